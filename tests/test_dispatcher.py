import asyncio
import json
import socket
import ssl

import httpx
import pytest

from proxy_utility.config import Settings, TrustPolicy
from proxy_utility.schemas import OutboundRequestSpec
from proxy_utility.services.dispatcher import (
    Dispatcher,
    Received,
    TransportNoResponse,
    TransportSetupFailure,
    TransportTimeout,
    build_ssl_context,
)


def _spec(**overrides) -> OutboundRequestSpec:
    values = {
        "method": "GET",
        "url": "https://upstream.test/items",
        "headers": {"User-Agent": "test-agent"},
        "timeout": 1000,
    }
    values.update(overrides)
    return OutboundRequestSpec(**values)


async def _dispatch(handler, spec: OutboundRequestSpec, **kwargs):
    dispatcher = Dispatcher(transport=httpx.MockTransport(handler), **kwargs)
    try:
        return await dispatcher.dispatch(spec)
    finally:
        await dispatcher.aclose()


@pytest.mark.asyncio
async def test_json_response_is_received():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, json={"ok": True})

    outcome = await _dispatch(handler, _spec(query={"page": "2"}))

    assert isinstance(outcome, Received)
    assert outcome.status == 200
    assert outcome.status_text == "OK"
    assert outcome.data == {"ok": True}
    assert outcome.headers["content-type"] == "application/json"
    request = seen["request"]
    assert request.method == "GET"
    assert request.url.params["page"] == "2"
    assert request.headers["user-agent"] == "test-agent"


@pytest.mark.asyncio
async def test_error_statuses_are_received_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"msg": "not found"})

    outcome = await _dispatch(handler, _spec())

    assert outcome == Received(
        status=404,
        status_text="Not Found",
        headers=outcome.headers,
        data={"msg": "not found"},
    )


@pytest.mark.asyncio
async def test_server_error_is_received():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="maintenance")

    outcome = await _dispatch(handler, _spec())

    assert isinstance(outcome, Received)
    assert outcome.status == 503
    assert outcome.data == "maintenance"


@pytest.mark.asyncio
async def test_empty_body_is_empty_string():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    outcome = await _dispatch(handler, _spec(method="DELETE"))

    assert outcome.status == 204
    assert outcome.data == ""


@pytest.mark.asyncio
async def test_json_body_is_sent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["content_type"] = request.headers["content-type"]
        return httpx.Response(201)

    await _dispatch(handler, _spec(method="POST", body={"name": "widget"}))

    assert seen["body"] == {"name": "widget"}
    assert seen["content_type"] == "application/json"


@pytest.mark.asyncio
async def test_string_body_is_sent_raw():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        return httpx.Response(200)

    await _dispatch(
        handler,
        _spec(method="PUT", body="a=1&b=2", headers={"Content-Type": "text/plain"}),
    )

    assert seen["body"] == b"a=1&b=2"


@pytest.mark.asyncio
async def test_set_cookie_headers_are_kept_as_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2"), ("X-Trace", "abc")],
        )

    outcome = await _dispatch(handler, _spec())

    assert outcome.headers["set-cookie"] == ["a=1", "b=2"]
    assert outcome.headers["x-trace"] == "abc"


@pytest.mark.asyncio
async def test_redirects_are_followed():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(302, headers={"Location": "https://upstream.test/new"})
        return httpx.Response(200, json={"path": request.url.path})

    outcome = await _dispatch(handler, _spec(url="https://upstream.test/old"))

    assert outcome.status == 200
    assert outcome.data == {"path": "/new"}


@pytest.mark.asyncio
async def test_redirect_loop_is_no_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": "https://upstream.test/loop"})

    outcome = await _dispatch(handler, _spec(), max_redirects=2)

    assert isinstance(outcome, TransportNoResponse)


@pytest.mark.asyncio
async def test_slow_upstream_times_out():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    loop = asyncio.get_running_loop()
    started = loop.time()
    outcome = await _dispatch(handler, _spec(timeout=50))

    assert outcome == TransportTimeout(timeout=50)
    assert loop.time() - started < 1


@pytest.mark.asyncio
async def test_httpx_timeout_is_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert await _dispatch(handler, _spec(timeout=200)) == TransportTimeout(timeout=200)


@pytest.mark.asyncio
async def test_connection_refused_is_no_response():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    outcome = await _dispatch(handler, _spec())

    assert outcome == TransportNoResponse(detail="[Errno 111] Connection refused")


@pytest.mark.asyncio
async def test_connection_reset_is_no_response():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("Connection reset by peer", request=request)

    assert isinstance(await _dispatch(handler, _spec()), TransportNoResponse)


@pytest.mark.asyncio
async def test_dns_failure_is_setup_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(
            "[Errno -2] Name or service not known", request=request
        ) from socket.gaierror(-2, "Name or service not known")

    outcome = await _dispatch(handler, _spec())

    assert outcome == TransportSetupFailure(detail="[Errno -2] Name or service not known")


@pytest.mark.asyncio
async def test_unsupported_protocol_is_setup_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.UnsupportedProtocol("Request URL has an unsupported protocol 'ftp://'.")

    outcome = await _dispatch(handler, _spec(url="ftp://upstream.test/file"))

    assert isinstance(outcome, TransportSetupFailure)


@pytest.mark.asyncio
async def test_unserializable_body_is_setup_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200)

    outcome = await _dispatch(handler, _spec(method="POST", body={1, 2}))

    assert isinstance(outcome, TransportSetupFailure)


@pytest.mark.asyncio
async def test_unexpected_error_is_setup_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("boom")

    assert await _dispatch(handler, _spec()) == TransportSetupFailure(detail="boom")


def test_relaxed_ssl_context_skips_verification():
    context = build_ssl_context(TrustPolicy.RELAXED)

    assert context.verify_mode == ssl.CERT_NONE
    assert context.check_hostname is False
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2


def test_strict_ssl_context_verifies():
    context = build_ssl_context(TrustPolicy.STRICT)

    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2


@pytest.mark.asyncio
async def test_from_settings_uses_trust_policy():
    dispatcher = Dispatcher.from_settings(Settings(tls_trust="strict"))
    try:
        assert dispatcher.trust_policy is TrustPolicy.STRICT
        assert dispatcher.ssl_context.verify_mode == ssl.CERT_REQUIRED
    finally:
        await dispatcher.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [b'{"v": NaN}', b'{"v": -Infinity}', b'{"v": 1e999}'])
async def test_non_finite_json_is_relayed_as_text(content):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, content=content, headers={"Content-Type": "application/json"}
        )

    outcome = await _dispatch(handler, _spec())

    assert outcome.data == content.decode()


@pytest.mark.asyncio
async def test_rejected_request_line_is_setup_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.LocalProtocolError("Illegal header name b'X Bad'")

    outcome = await _dispatch(handler, _spec(headers={"X Bad": "1"}))

    assert outcome == TransportSetupFailure(detail="Illegal header name b'X Bad'")


@pytest.mark.asyncio
async def test_non_ascii_header_value_is_setup_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200)

    outcome = await _dispatch(handler, _spec(headers={"X-Name": "café"}))

    assert isinstance(outcome, TransportSetupFailure)
