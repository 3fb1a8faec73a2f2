import logging
import re
from typing import Mapping, Optional

import httpx

logger = logging.getLogger("token_broker")

REPOSITORY_PATTERN = re.compile(r"^/v2/(.*?)/(manifests|blobs|tags)")

# Only these client headers reach the auth service.
FORWARDED_HEADERS = ("User-Agent", "Accept", "Accept-Language", "Accept-Encoding")


def extract_repository(path: str) -> Optional[str]:
    match = REPOSITORY_PATTERN.match(path)
    return match.group(1) if match else None


def pull_scope(repository: Optional[str]) -> str:
    return f"repository:{repository or ''}:pull"


async def fetch_token(
    client: httpx.AsyncClient,
    path: str,
    headers: Mapping[str, str],
    auth_url: str,
    service: str,
) -> Optional[str]:
    """
    Exchange for an anonymous pull token covering the repository in `path`.
    Returns None when the path names no repository or the exchange fails.
    Network errors propagate to the caller.
    """
    repository = extract_repository(path)
    if not repository:
        return None

    forwarded = {name: headers[name] for name in FORWARDED_HEADERS if name in headers}
    params = {"service": service, "scope": pull_scope(repository)}

    resp = await client.get(f"{auth_url}/token", params=params, headers=forwarded)
    if not resp.is_success:
        logger.warning(f"Token exchange for {repository} failed: {resp.status_code}")
        return None

    try:
        data = resp.json()
    except ValueError:
        logger.warning(f"Token exchange for {repository} returned an unparsable body")
        return None

    token = data.get("token") if isinstance(data, dict) else None
    return token or None
