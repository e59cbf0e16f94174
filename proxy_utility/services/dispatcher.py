from __future__ import annotations

import asyncio
import logging
import math
import socket
import ssl
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx

from ..config import Settings, TrustPolicy, get_settings
from ..schemas import OutboundRequestSpec

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class Received:
    status: int
    status_text: str
    headers: Dict[str, Any]
    data: Any


@dataclass(frozen=True)
class TransportTimeout:
    timeout: int


@dataclass(frozen=True)
class TransportNoResponse:
    detail: str


@dataclass(frozen=True)
class TransportSetupFailure:
    detail: str


Outcome = Union[Received, TransportTimeout, TransportNoResponse, TransportSetupFailure]

_SETUP_ERRORS = (
    httpx.InvalidURL,
    httpx.UnsupportedProtocol,
    httpx.LocalProtocolError,
    TypeError,
    ValueError,
)


def build_ssl_context(policy: TrustPolicy) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if policy is TrustPolicy.RELAXED:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


class Dispatcher:
    """Executes one outbound call per ``dispatch`` over a shared connection pool.

    Every HTTP status is a ``Received`` outcome; only transport problems
    produce the failure outcomes.
    """

    def __init__(
        self,
        *,
        trust_policy: TrustPolicy = TrustPolicy.RELAXED,
        max_redirects: int = 5,
        max_connections: int = 10,
        max_keepalive_connections: int = 5,
        keepalive_expiry: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.trust_policy = trust_policy
        self.ssl_context = build_ssl_context(trust_policy)
        self._client = httpx.AsyncClient(
            verify=self.ssl_context,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
                keepalive_expiry=keepalive_expiry,
            ),
            follow_redirects=True,
            max_redirects=max_redirects,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Dispatcher":
        settings = settings or get_settings()
        return cls(
            trust_policy=settings.tls_trust,
            max_redirects=settings.max_redirects,
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
            keepalive_expiry=settings.keepalive_expiry,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def dispatch(self, spec: OutboundRequestSpec) -> Outcome:
        seconds = spec.timeout / 1000
        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange.
            response = await asyncio.wait_for(self._send(spec, seconds), timeout=seconds)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return TransportTimeout(timeout=spec.timeout)
        except httpx.ConnectError as exc:
            if _caused_by(exc, socket.gaierror):
                return TransportSetupFailure(detail=_detail(exc))
            return TransportNoResponse(detail=_detail(exc))
        except _SETUP_ERRORS as exc:
            return TransportSetupFailure(detail=_detail(exc))
        except (httpx.TransportError, httpx.TooManyRedirects, httpx.DecodingError) as exc:
            return TransportNoResponse(detail=_detail(exc))
        except Exception as exc:
            logger.exception("Unexpected error while dispatching %s %s", spec.method, spec.url)
            return TransportSetupFailure(detail=_detail(exc))

        return Received(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=_response_headers(response.headers),
            data=_response_data(response),
        )

    async def _send(self, spec: OutboundRequestSpec, seconds: float) -> httpx.Response:
        kwargs: Dict[str, Any] = {}
        if isinstance(spec.body, (str, bytes)):
            kwargs["content"] = spec.body
        elif spec.body is not None:
            kwargs["json"] = spec.body

        return await self._client.request(
            spec.method,
            spec.url,
            params=spec.query or None,
            headers=spec.headers,
            timeout=httpx.Timeout(seconds),
            **kwargs,
        )


def _response_headers(headers: httpx.Headers) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for name in headers.keys():
        if name in result:
            continue
        if name == "set-cookie":
            result[name] = headers.get_list(name)
        else:
            result[name] = headers[name]
    return result


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite JSON number {name}")


def _finite_float(literal: str) -> float:
    value = float(literal)
    if math.isinf(value):
        raise ValueError(f"Non-finite JSON number {literal}")
    return value


def _response_data(response: httpx.Response) -> Any:
    # NaN and Infinity cannot be re-serialized as JSON; such bodies are relayed as text.
    try:
        return response.json(parse_constant=_reject_constant, parse_float=_finite_float)
    except ValueError:
        return response.text


def _caused_by(exc: BaseException, kind: type) -> bool:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, kind):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def _detail(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__
