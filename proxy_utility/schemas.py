from typing import Any, ClassVar, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RequestDescriptor(BaseModel):
    """Loose shape of an inbound proxy request; unknown keys are ignored."""

    url: str
    method: Optional[str] = None
    headers: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
    params: Optional[Dict[str, Any]] = None
    body: Optional[Any] = None
    timeout: Optional[Any] = None


class OutboundRequestSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    headers: Dict[str, str]
    query: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Any] = None
    timeout: int


class SuccessEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[True] = True
    status: int
    status_text: str = Field(alias="statusText")
    headers: Dict[str, Any]
    data: Any = None

    @property
    def http_status(self) -> int:
        return self.status


class FailureEnvelope(BaseModel):
    http_status: ClassVar[int] = 500

    success: Literal[False] = False
    error: str


class TimeoutEnvelope(FailureEnvelope):
    http_status: ClassVar[int] = 408

    error: str = "Request timeout"
    details: str = "The request took too long to complete. Try increasing the timeout value."
    timeout: int


class NoResponseEnvelope(FailureEnvelope):
    error: str = "No response received from target server"
    details: str


class SetupFailureEnvelope(FailureEnvelope):
    error: str = "Request setup failed"
    details: str


class ValidationFailureEnvelope(FailureEnvelope):
    http_status: ClassVar[int] = 400


ResponseEnvelope = Union[
    SuccessEnvelope,
    TimeoutEnvelope,
    NoResponseEnvelope,
    SetupFailureEnvelope,
    ValidationFailureEnvelope,
]
