import logging
import re

import httpx
from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from hub_mirror.config import Settings
from hub_mirror.services import registry_proxy, token_broker
from hub_mirror.services.relay import ALLOW_ORIGIN, outbound_headers, response_headers, stream_response

logger = logging.getLogger("docker_proxy")

# /v2/<name>/<op>/<ref> with an unqualified image name
OFFICIAL_IMAGE_PATH = re.compile(r"^/v2/[^/]+/[^/]+/[^/]+$")
TOKEN_GATED_PATH = re.compile(r"^/v2/.*?/(manifests|blobs|tags)/.*")


def registry_error(status_code: int, code: str, message: str, headers=None) -> JSONResponse:
    """Registry v2 style error body, e.g. {"errors": [{"code": "UNAUTHORIZED", ...}]}."""
    headers = dict(headers or {})
    headers["Docker-Distribution-API-Version"] = "registry/2.0"
    headers[ALLOW_ORIGIN] = "*"
    return JSONResponse(
        status_code=status_code,
        content={"errors": [{"code": code, "message": message}]},
        headers=headers,
    )


def normalize_official_image(path: str, upstream_host: str, default_hub_host: str) -> str:
    """/v2/nginx/manifests/latest -> /v2/library/nginx/manifests/latest on the hub."""
    if (
        upstream_host == default_hub_host
        and OFFICIAL_IMAGE_PATH.match(path)
        and not path.startswith("/v2/library")
    ):
        path = f"/v2/library{path[3:]}"
        logger.info(f"Modified URL for library image: {path}")
    return path


def unauthorized_challenge(path: str, settings: Settings) -> Response:
    scope = token_broker.pull_scope(token_broker.extract_repository(path))
    challenge = (
        f'Bearer realm="{settings.AUTH_URL}/token",'
        f'service="{settings.AUTH_SERVICE}",scope="{scope}"'
    )
    return registry_error(
        401,
        "UNAUTHORIZED",
        "authentication required",
        headers={"www-authenticate": challenge},
    )


async def proxy_token(client: httpx.AsyncClient, request: Request, settings: Settings) -> StreamingResponse:
    """
    Relay a client's own token request to the auth service untouched.
    """
    url = f"{settings.AUTH_URL}{request.url.path}"
    if request.url.query:
        url += f"?{request.url.query}"

    req = client.build_request(
        request.method,
        url,
        headers=outbound_headers(request.headers, host=settings.auth_host),
        content=await request.body(),
    )
    resp = await client.send(req, stream=True)

    headers = response_headers(resp)
    headers[ALLOW_ORIGIN] = "*"
    return stream_response(resp, headers)


async def handle_api_request(
    client: httpx.AsyncClient, request: Request, upstream_host: str, settings: Settings
) -> Response:
    path = request.url.path

    try:
        if "/token" in path:
            return await proxy_token(client, request, settings)

        path = normalize_official_image(path, upstream_host, settings.DEFAULT_HUB_HOST)

        token = None
        if TOKEN_GATED_PATH.match(path):
            if not token_broker.extract_repository(path):
                return registry_error(400, "NAME_INVALID", "invalid repository name")

            token = await token_broker.fetch_token(
                client, path, request.headers, settings.AUTH_URL, settings.AUTH_SERVICE
            )
            if not token:
                return unauthorized_challenge(path, settings)

        return await registry_proxy.proxy_and_process(
            client, request, path, upstream_host, token, settings
        )
    except httpx.RequestError as e:
        logger.error(f"Connection error: {e}")
        return Response(
            content=f"Upstream error: {e}", status_code=502, headers={ALLOW_ORIGIN: "*"}
        )
