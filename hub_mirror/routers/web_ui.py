import logging
from pathlib import Path

import httpx
from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.datastructures import QueryParams

from hub_mirror.config import Settings
from hub_mirror.services.host_resolver import RouteDecision
from hub_mirror.services.relay import outbound_headers, response_headers, stream_response

logger = logging.getLogger("web_ui")

templates = Jinja2Templates(directory=Path(__file__).resolve().parent.parent / "templates")

OFFICIAL_NAMESPACE_PREFIX = "library/"


def nginx_page(request: Request, status_code: int = 200) -> Response:
    return templates.TemplateResponse(request, "nginx.html", status_code=status_code)


def normalize_search_query(query: str) -> str:
    """Official images are indexed without their library/ prefix."""
    params = QueryParams(query)
    q = params.get("q")
    if q is None or not q.startswith(OFFICIAL_NAMESPACE_PREFIX):
        return query
    items = [
        (k, v[len(OFFICIAL_NAMESPACE_PREFIX):] if k == "q" else v)
        for k, v in params.multi_items()
    ]
    return str(QueryParams(items))


async def _relay(client: httpx.AsyncClient, request: Request, url: str) -> Response:
    req = client.build_request(
        request.method,
        url,
        headers=outbound_headers(request.headers, host=httpx.URL(url).host),
        content=await request.body(),
    )
    resp = await client.send(req, stream=True, follow_redirects=True)
    return stream_response(resp, response_headers(resp))


async def handle_ui_request(
    client: httpx.AsyncClient, request: Request, decision: RouteDecision, settings: Settings
) -> Response:
    path = request.url.path

    try:
        if path == "/":
            if settings.URL302:
                return RedirectResponse(settings.URL302, status_code=302)
            if settings.URL:
                if settings.URL.lower() == "nginx":
                    return nginx_page(request)
                return await _relay(client, request, settings.URL)
            if decision.show_ui_page:
                return templates.TemplateResponse(
                    request,
                    "search.html",
                    {"title": "Docker Hub Image Search", "mirror_host": request.url.hostname},
                )

        if path.startswith("/v1/"):
            host = settings.SEARCH_HOST
        else:
            host = settings.HUB_WEB_HOST

        url = f"https://{host}{path}"
        query = normalize_search_query(request.url.query)
        if query:
            url += f"?{query}"
        return await _relay(client, request, url)
    except httpx.RequestError as e:
        logger.error(f"UI upstream error: {e}")
        return Response(content=f"Upstream error: {e}", status_code=502)
