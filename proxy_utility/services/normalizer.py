from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

from pydantic import ValidationError as PydanticValidationError

from ..config import BROWSER_HEADERS, DEFAULT_TIMEOUT_MS
from ..errors import ValidationError
from ..schemas import OutboundRequestSpec, RequestDescriptor

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
DEFAULT_METHOD = "POST"


def normalize(
    descriptor: Any,
    *,
    default_headers: Optional[Mapping[str, str]] = None,
    default_timeout: int = DEFAULT_TIMEOUT_MS,
) -> OutboundRequestSpec:
    """Validate an untyped descriptor and build the outbound request from it.

    Raises ``ValidationError`` with a caller-facing message when the
    descriptor cannot be forwarded.
    """
    if not isinstance(descriptor, Mapping):
        descriptor = {}

    url = descriptor.get("url")
    if url is None or url == "":
        raise ValidationError("URL is required")
    if not isinstance(url, str) or not _is_absolute_url(url):
        raise ValidationError("Invalid URL format")

    try:
        parsed = RequestDescriptor.model_validate(dict(descriptor))
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc

    method = (parsed.method or DEFAULT_METHOD).upper()
    if default_headers is None:
        default_headers = BROWSER_HEADERS

    body = None
    if method in BODY_METHODS and _has_body(parsed.body):
        body = parsed.body

    return OutboundRequestSpec(
        method=method,
        url=substitute_path_params(parsed.url, parsed.params or {}),
        headers=merge_headers(default_headers, parsed.headers or {}),
        query=dict(parsed.query or {}),
        body=body,
        timeout=_coerce_timeout(parsed.timeout, default_timeout),
    )


def merge_headers(
    defaults: Mapping[str, str], overrides: Mapping[str, Any]
) -> Dict[str, str]:
    # Header names are case-insensitive: a caller's "user-agent" replaces "User-Agent".
    overridden = {name.lower() for name in overrides}
    merged = {
        name: value for name, value in defaults.items() if name.lower() not in overridden
    }
    for name, value in overrides.items():
        merged[name] = stringify(value)
    return merged


def substitute_path_params(url: str, params: Mapping[str, Any]) -> str:
    """Replace every ``:<key>`` token in ``url``, one key at a time in insertion order.

    Matching is plain substring replacement, so ``:id`` also matches the
    start of ``:identifier``.
    """
    for key, value in params.items():
        url = url.replace(f":{key}", stringify(value))
    return url


def stringify(value: Any) -> str:
    """Spell scalars the way JSON does: ``true``, ``false``, ``null``, ``2`` for ``2.0``."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _has_body(body: Any) -> bool:
    # Empty strings, zero and false are treated as no body; empty objects and arrays are sent.
    if body is None or body is False:
        return False
    if isinstance(body, (str, bytes, int, float)):
        return bool(body)
    return True


def _is_absolute_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc) and bool(parts.hostname)


def _coerce_timeout(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and value > 0:
        return value
    return default


def _describe(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "descriptor"
    return f"Invalid request: {field}: {error['msg']}"
