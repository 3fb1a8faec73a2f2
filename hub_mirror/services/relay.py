"""Shared helpers for relaying streamed httpx responses back through FastAPI."""
from typing import Dict, Optional

import httpx
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.datastructures import Headers, MutableHeaders

# Never relayed in either direction
HOP_BY_HOP_HEADERS = ("connection", "keep-alive", "transfer-encoding")

ALLOW_ORIGIN = "access-control-allow-origin"
EXPOSE_HEADERS = "access-control-expose-headers"


def outbound_headers(incoming: Headers, host: Optional[str] = None) -> Dict[str, str]:
    """Copy client headers for an upstream call, optionally pinning Host."""
    headers = {k: v for k, v in incoming.items() if k not in HOP_BY_HOP_HEADERS}
    headers.pop("host", None)
    headers.pop("content-length", None)
    if host:
        headers["host"] = host
    return headers


def response_headers(resp: httpx.Response) -> MutableHeaders:
    """Upstream response headers minus hop-by-hop ones; repeated headers stay separate."""
    headers = MutableHeaders()
    for name, value in resp.headers.multi_items():
        if name not in HOP_BY_HOP_HEADERS:
            headers.append(name, value)
    return headers


def allow_any_origin(headers: MutableHeaders) -> MutableHeaders:
    headers[ALLOW_ORIGIN] = "*"
    headers[EXPOSE_HEADERS] = "*"
    return headers


def drop_headers(headers: MutableHeaders, *names: str) -> None:
    for name in names:
        if name in headers:
            del headers[name]


def stream_response(resp: httpx.Response, headers: MutableHeaders) -> StreamingResponse:
    """Relay an upstream response opened with ``stream=True``, body untouched."""

    async def iter_response():
        try:
            if resp.is_stream_consumed:
                yield resp.content
            else:
                async for chunk in resp.aiter_raw():
                    yield chunk
        finally:
            await resp.aclose()

    # The background close covers clients that disconnect before the body starts.
    response = StreamingResponse(
        iter_response(), status_code=resp.status_code, background=BackgroundTask(resp.aclose)
    )
    response.raw_headers = headers.raw
    return response
