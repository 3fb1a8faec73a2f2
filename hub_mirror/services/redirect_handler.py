import logging
from urllib.parse import urljoin

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse

from hub_mirror.services.relay import (
    allow_any_origin,
    drop_headers,
    outbound_headers,
    response_headers,
    stream_response,
)

logger = logging.getLogger("redirect_handler")

# Inherited from storage/CDN responses; must not reach a browser through us.
STRIPPED_RESPONSE_HEADERS = (
    "content-security-policy",
    "content-security-policy-report-only",
    "clear-site-data",
)


async def handle_redirect(
    client: httpx.AsyncClient,
    request: Request,
    location: str,
    base_host: str,
    cache_max_age: int,
) -> StreamingResponse:
    """
    Follow an upstream redirect on the client's behalf.

    Pre-signed storage URLs carry their own credentials in the query string,
    so the Authorization header is dropped before re-issuing the request.
    """
    target = urljoin(f"https://{base_host}/", location)
    logger.info(f"Handling redirect to: {target}")

    headers = outbound_headers(request.headers)
    headers.pop("authorization", None)

    req = client.build_request(
        request.method, target, headers=headers, content=await request.body()
    )
    resp = await client.send(req, stream=True, follow_redirects=True)

    resp_headers = allow_any_origin(response_headers(resp))
    resp_headers["cache-control"] = f"max-age={cache_max_age}"
    drop_headers(resp_headers, *STRIPPED_RESPONSE_HEADERS)

    return stream_response(resp, resp_headers)
