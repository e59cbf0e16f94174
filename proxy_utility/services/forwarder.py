from __future__ import annotations

import logging
from typing import Any, Optional

from ..config import Settings, get_settings
from ..errors import ValidationError
from ..schemas import FailureEnvelope, ResponseEnvelope
from .classifier import classify
from .dispatcher import Dispatcher
from .normalizer import normalize

logger = logging.getLogger("uvicorn.error")


async def forward(
    payload: Any,
    dispatcher: Dispatcher,
    settings: Optional[Settings] = None,
) -> ResponseEnvelope:
    settings = settings or get_settings()
    try:
        spec = normalize(
            payload,
            default_headers=settings.default_headers,
            default_timeout=settings.default_timeout_ms,
        )
    except ValidationError as exc:
        return classify(exc)

    logger.debug("Forwarding %s %s", spec.method, spec.url)
    envelope = classify(await dispatcher.dispatch(spec))
    if isinstance(envelope, FailureEnvelope):
        logger.warning(
            "Proxy request failed: %s %s: %s (%s)",
            spec.method,
            spec.url,
            envelope.error,
            getattr(envelope, "details", ""),
        )
    return envelope
