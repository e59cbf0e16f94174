class ValidationError(ValueError):
    """Raised when a request descriptor cannot be turned into an outbound request.

    The message is returned verbatim to the caller.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
