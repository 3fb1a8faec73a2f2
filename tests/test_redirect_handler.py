import httpx

from conftest import DOCKER_UA, token_ok

HUB = "registry-1.docker.io"
BLOB_PATH = "/v2/library/nginx/blobs/sha256:0123"
SIGNED_URL = "https://storage.example.com/sha256/0123/data?X-Amz-Signature=sig&X-Amz-Expires=1200"


def redirecting_registry(location, storage_response):
    def handler(request):
        if request.url.host == "auth.docker.io":
            return token_ok(request)
        if request.url.host == HUB:
            return httpx.Response(307, headers={"Location": location})
        return storage_response(request)

    return handler


def storage_ok(request):
    return httpx.Response(
        200,
        headers={
            "Content-Type": "application/octet-stream",
            "Cache-Control": "no-store",
            "Content-Security-Policy": "default-src 'none'",
            "Content-Security-Policy-Report-Only": "default-src 'self'",
            "Clear-Site-Data": '"cache"',
            "ETag": '"blob-etag"',
        },
        content=b"layer-bytes",
    )


def test_redirect_is_followed_without_authorization(make_client):
    client, upstream = make_client(redirecting_registry(SIGNED_URL, storage_ok))

    resp = client.get(
        BLOB_PATH, headers={"User-Agent": DOCKER_UA, "Authorization": "Bearer client-token"}
    )

    assert resp.status_code == 200
    assert resp.content == b"layer-bytes"

    (registry_request,) = upstream.to(HUB)
    assert registry_request.headers["authorization"] == "Bearer anon-token"

    (storage_request,) = upstream.to("storage.example.com")
    assert str(storage_request.url) == SIGNED_URL
    assert storage_request.method == "GET"
    assert storage_request.headers["host"] == "storage.example.com"
    assert storage_request.headers["user-agent"] == DOCKER_UA
    assert "authorization" not in storage_request.headers


def test_redirect_response_headers_are_sanitized(make_client):
    client, _ = make_client(redirecting_registry(SIGNED_URL, storage_ok))

    resp = client.get(BLOB_PATH, headers={"User-Agent": DOCKER_UA})

    assert resp.headers["cache-control"] == "max-age=1500"
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-expose-headers"] == "*"
    assert resp.headers["etag"] == '"blob-etag"'
    assert "content-security-policy" not in resp.headers
    assert "content-security-policy-report-only" not in resp.headers
    assert "clear-site-data" not in resp.headers


def test_redirect_cache_age_is_configurable(make_client):
    client, _ = make_client(
        redirecting_registry(SIGNED_URL, storage_ok), REDIRECT_CACHE_MAX_AGE=60
    )

    resp = client.get(BLOB_PATH, headers={"User-Agent": DOCKER_UA})

    assert resp.headers["cache-control"] == "max-age=60"


def test_relative_location_resolves_against_upstream(make_client):
    def handler(request):
        if request.url.host == "auth.docker.io":
            return token_ok(request)
        if request.url.path == BLOB_PATH:
            return httpx.Response(307, headers={"Location": "/v2/library/nginx/blobs/uploads/mirror"})
        return httpx.Response(200, content=b"moved")

    client, upstream = make_client(handler)

    resp = client.get(BLOB_PATH, headers={"User-Agent": DOCKER_UA})

    assert resp.status_code == 200
    assert resp.content == b"moved"
    followed = upstream.requests[-1]
    assert str(followed.url) == f"https://{HUB}/v2/library/nginx/blobs/uploads/mirror"
    assert "authorization" not in followed.headers


def test_nested_redirects_are_followed(make_client):
    def storage(request):
        if request.url.path == "/first":
            return httpx.Response(302, headers={"Location": "https://cdn.example.com/final"})
        return httpx.Response(200, content=b"final-bytes")

    client, upstream = make_client(
        redirecting_registry("https://storage.example.com/first", storage)
    )

    resp = client.get(BLOB_PATH, headers={"User-Agent": DOCKER_UA})

    assert resp.status_code == 200
    assert resp.content == b"final-bytes"
    (cdn_request,) = upstream.to("cdn.example.com")
    assert "authorization" not in cdn_request.headers


def test_redirect_target_failure_is_bad_gateway(make_client):
    def storage(request):
        raise httpx.ConnectError("storage unreachable", request=request)

    client, _ = make_client(redirecting_registry(SIGNED_URL, storage))

    resp = client.get(BLOB_PATH, headers={"User-Agent": DOCKER_UA})

    assert resp.status_code == 502
