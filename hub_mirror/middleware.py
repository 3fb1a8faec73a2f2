from typing import Iterable

from fastapi import Request, Response

from hub_mirror.routers.dispatcher import user_agent
from hub_mirror.routers.web_ui import nginx_page

PREFLIGHT_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "GET,POST,PUT,PATCH,TRACE,DELETE,HEAD,OPTIONS",
    "access-control-max-age": "1728000",
}


def is_blocked(ua: str, blocked_user_agents: Iterable[str]) -> bool:
    return any(blocked in ua for blocked in blocked_user_agents)


async def gatekeeper(request: Request, call_next):
    """Answer CORS preflight and turn away blocked crawlers before any routing."""
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=PREFLIGHT_HEADERS)

    if is_blocked(user_agent(request), request.app.state.blocked_user_agents):
        return nginx_page(request, status_code=403)

    return await call_next(request)
