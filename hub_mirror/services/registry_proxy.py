import logging
from typing import Optional

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse

from hub_mirror.config import Settings
from hub_mirror.services.redirect_handler import handle_redirect
from hub_mirror.services.relay import (
    allow_any_origin,
    outbound_headers,
    response_headers,
    stream_response,
)

logger = logging.getLogger("registry_proxy")


def build_proxy_request(
    client: httpx.AsyncClient,
    request: Request,
    path: str,
    upstream_host: str,
    token: Optional[str],
    body: bytes,
    cache_ttl: int,
) -> httpx.Request:
    """Outbound request to `upstream_host`; authorized only by our own token."""
    url = f"https://{upstream_host}{path}"
    if request.url.query:
        url += f"?{request.url.query}"

    headers = outbound_headers(request.headers, host=upstream_host)
    headers.pop("authorization", None)
    if token:
        headers["authorization"] = f"Bearer {token}"

    return client.build_request(
        request.method,
        url,
        headers=headers,
        content=body,
        extensions={"cache_ttl": cache_ttl},
    )


def rewrite_challenge(challenge: str, auth_url: str, proxy_hostname: str) -> str:
    # Point realm back at ourselves so clients fetch tokens via the proxy.
    return challenge.replace(auth_url, f"https://{proxy_hostname}")


async def proxy_and_process(
    client: httpx.AsyncClient,
    request: Request,
    path: str,
    upstream_host: str,
    token: Optional[str],
    settings: Settings,
) -> StreamingResponse:
    proxy_req = build_proxy_request(
        client,
        request,
        path,
        upstream_host,
        token,
        await request.body(),
        settings.UPSTREAM_CACHE_TTL,
    )
    logger.debug(f"Upstream request: {proxy_req.method} {proxy_req.url}")
    resp = await client.send(proxy_req, stream=True, follow_redirects=False)

    location = resp.headers.get("location")
    if location:
        await resp.aclose()
        return await handle_redirect(
            client, request, location, upstream_host, settings.REDIRECT_CACHE_MAX_AGE
        )

    headers = response_headers(resp)
    challenges = headers.getlist("www-authenticate")
    if challenges:
        del headers["www-authenticate"]
        for challenge in challenges:
            headers.append(
                "www-authenticate",
                rewrite_challenge(challenge, settings.AUTH_URL, request.url.hostname or ""),
            )

    return stream_response(resp, allow_any_origin(headers))
