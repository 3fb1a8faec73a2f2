from dataclasses import dataclass
from enum import Enum
from typing import Optional

from starlette.datastructures import URL, QueryParams

# `ns=docker.io` is shorthand for the default hub.
DOCKER_IO_NAMESPACE = "docker.io"


class Registry(Enum):
    """Well-known registries, keyed by the hostname prefix that selects them.

    A ``None`` host stands for the configured default hub.
    """

    QUAY = ("quay", "quay.io")
    GCR = ("gcr", "gcr.io")
    K8S_GCR = ("k8s-gcr", "k8s.gcr.io")
    K8S = ("k8s", "registry.k8s.io")
    GHCR = ("ghcr", "ghcr.io")
    CLOUDSMITH = ("cloudsmith", "docker.cloudsmith.io")
    NVCR = ("nvcr", "nvcr.io")
    TEST = ("test", None)

    def __init__(self, prefix: str, host: Optional[str]):
        self.prefix = prefix
        self.host = host

    @classmethod
    def from_prefix(cls, prefix: str) -> Optional["Registry"]:
        for registry in cls:
            if registry.prefix == prefix:
                return registry
        return None


class RouteSource(Enum):
    NAMESPACE = "namespace"  # explicit ?ns=
    KNOWN_REGISTRY = "known_registry"  # hostname prefix found in Registry
    DEFAULT_HUB = "default_hub"  # fallback


@dataclass(frozen=True)
class RouteDecision:
    upstream_host: str
    show_ui_page: bool
    source: RouteSource


def resolve(url: URL, default_hub_host: str) -> RouteDecision:
    """Pick the upstream registry host for an incoming request URL."""
    params = QueryParams(url.query)

    ns = params.get("ns")
    if ns:
        upstream = default_hub_host if ns == DOCKER_IO_NAMESPACE else ns
        return RouteDecision(upstream, False, RouteSource.NAMESPACE)

    hostname = params.get("hubhost") or url.hostname or ""
    registry = Registry.from_prefix(hostname.split(".")[0])
    if registry is None:
        # Only implicit routing onto the hub gets the search UI.
        return RouteDecision(
            default_hub_host, "hubhost" not in params, RouteSource.DEFAULT_HUB
        )

    return RouteDecision(
        registry.host or default_hub_host, False, RouteSource.KNOWN_REGISTRY
    )
