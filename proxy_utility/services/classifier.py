from __future__ import annotations

from typing import Union

from ..errors import ValidationError
from ..schemas import (
    NoResponseEnvelope,
    ResponseEnvelope,
    SetupFailureEnvelope,
    SuccessEnvelope,
    TimeoutEnvelope,
    ValidationFailureEnvelope,
)
from .dispatcher import (
    Outcome,
    Received,
    TransportNoResponse,
    TransportSetupFailure,
    TransportTimeout,
)


def classify(outcome: Union[Outcome, ValidationError]) -> ResponseEnvelope:
    """Map a dispatch outcome (or a rejected descriptor) to the envelope sent back.

    Upstream 4xx/5xx responses are ``Received`` and therefore successes.
    """
    if isinstance(outcome, Received):
        return SuccessEnvelope(
            status=outcome.status,
            status_text=outcome.status_text,
            headers=outcome.headers,
            data=outcome.data,
        )
    if isinstance(outcome, TransportTimeout):
        return TimeoutEnvelope(timeout=outcome.timeout)
    if isinstance(outcome, TransportNoResponse):
        return NoResponseEnvelope(details=outcome.detail)
    if isinstance(outcome, TransportSetupFailure):
        return SetupFailureEnvelope(details=outcome.detail)
    if isinstance(outcome, ValidationError):
        return ValidationFailureEnvelope(error=outcome.message)
    raise TypeError(f"Cannot classify {type(outcome).__name__}")
