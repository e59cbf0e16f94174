import json
import re
from typing import Any, Dict, List
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from ..errors import ValidationError
from ..schemas import ResponseEnvelope
from ..services.classifier import classify
from ..services.dispatcher import Dispatcher
from ..services.forwarder import forward

router = APIRouter(tags=["proxy"])

_FORM_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_FORM_SEGMENT = re.compile(r"\[([^\[\]]*)\]")
# Statuses that must not carry a response body.
_BODYLESS_STATUSES = {204, 304}


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def parse_form(raw: bytes) -> Dict[str, Any]:
    """Decode an url-encoded body using bracket notation.

    ``headers[X-Token]=abc`` becomes a nested map and ``tags[]=a&tags[]=b`` a list.
    """
    result: Dict[str, Any] = {}
    for key, value in parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True):
        match = _FORM_KEY.match(key)
        if match is None:
            result[key] = value
            continue
        _assign(result, [match.group(1)] + _FORM_SEGMENT.findall(match.group(2)), value)
    return result


def _assign(result: Dict[str, Any], parts: List[str], value: str) -> None:
    # An empty segment (`a[]=1&a[]=2`) appends to a list under the preceding key.
    target = result
    for index, part in enumerate(parts[:-1]):
        node = target.get(part)
        if parts[index + 1] == "":
            if not isinstance(node, list):
                node = target[part] = [] if node is None else [node]
            node.append(value)
            return
        if not isinstance(node, dict):
            node = target[part] = {}
        target = node
    target[parts[-1]] = value


async def read_payload(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return {}
    media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if media_type == "application/x-www-form-urlencoded":
        return parse_form(raw)
    if media_type != "application/json" and not media_type.endswith("+json"):
        return {}
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError("Invalid request body") from exc


def render(envelope: ResponseEnvelope) -> Response:
    status_code = envelope.http_status
    if status_code in _BODYLESS_STATUSES:
        return Response(status_code=status_code)
    return JSONResponse(status_code=status_code, content=envelope.model_dump(by_alias=True))


@router.post("/proxy")
async def proxy_request(
    request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)
) -> Response:
    try:
        payload = await read_payload(request)
    except ValidationError as exc:
        return render(classify(exc))
    return render(await forward(payload, dispatcher))
