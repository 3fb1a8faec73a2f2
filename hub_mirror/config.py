import re
from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic_settings import BaseSettings

# Always blocked, regardless of the UA environment value.
BASE_BLOCKED_USER_AGENTS = ("netcraft",)

_ENV_LIST_SEPARATORS = re.compile(r"[\t |\"'\r\n,]+")


def parse_env_list(value: Optional[str]) -> List[str]:
    """Split a loosely formatted env value ("a, b|c 'd'") into its items."""
    if not value:
        return []
    return [item for item in _ENV_LIST_SEPARATORS.split(value) if item]


class Settings(BaseSettings):
    DEFAULT_HUB_HOST: str = "registry-1.docker.io"
    AUTH_URL: str = "https://auth.docker.io"
    AUTH_SERVICE: str = "registry.docker.io"
    SEARCH_HOST: str = "index.docker.io"
    HUB_WEB_HOST: str = "hub.docker.com"

    # Root page behaviour
    URL302: Optional[str] = None
    URL: Optional[str] = None

    # Extra blocked User-Agent fragments
    UA: str = ""

    UPSTREAM_CACHE_TTL: int = 3600
    REDIRECT_CACHE_MAX_AGE: int = 1500
    # Reads and writes stay unbounded for large blobs; connecting does not.
    UPSTREAM_TIMEOUT_SECONDS: Optional[float] = None
    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    TLS_ENABLED: bool = False
    CERT_DIR: str = "certs"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def auth_host(self) -> str:
        return self.AUTH_URL.split("://", 1)[-1].rstrip("/")

    @property
    def blocked_user_agents(self) -> Tuple[str, ...]:
        extra = parse_env_list(self.UA)
        return tuple(ua.lower() for ua in (*BASE_BLOCKED_USER_AGENTS, *extra))


@lru_cache()
def get_settings():
    return Settings()
