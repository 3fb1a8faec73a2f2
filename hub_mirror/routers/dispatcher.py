from fastapi import APIRouter, Request

from hub_mirror.routers import docker_proxy, web_ui
from hub_mirror.services import host_resolver

router = APIRouter()

SEARCH_API_PATHS = ("/v1/search", "/v1/repositories")
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "TRACE"]


def user_agent(request: Request) -> str:
    return (request.headers.get("user-agent") or "null").lower()


def wants_ui(request: Request, decision: host_resolver.RouteDecision) -> bool:
    """Search API calls always, browsers only when landing on the hub implicitly."""
    path = request.url.path
    if any(p in path for p in SEARCH_API_PATHS):
        return True
    return "mozilla" in user_agent(request) and decision.show_ui_page


@router.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
async def dispatch(path: str, request: Request):
    settings = request.app.state.settings
    client = request.app.state.http_client

    decision = host_resolver.resolve(request.url, settings.DEFAULT_HUB_HOST)

    if wants_ui(request, decision):
        return await web_ui.handle_ui_request(client, request, decision, settings)
    return await docker_proxy.handle_api_request(
        client, request, decision.upstream_host, settings
    )
