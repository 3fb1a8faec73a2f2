import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
from fastapi import FastAPI

from hub_mirror.config import Settings, get_settings
from hub_mirror.middleware import gatekeeper
from hub_mirror.routers import dispatcher

# Configure Logging
logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("main")


def create_app(settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        owns_client = http_client is None
        if owns_client:
            app.state.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    settings.UPSTREAM_TIMEOUT_SECONDS,
                    connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
                )
            )
        logger.info(f"Default hub: {settings.DEFAULT_HUB_HOST}, auth: {settings.AUTH_URL}")
        logger.info(f"Blocked user agents: {', '.join(app.state.blocked_user_agents)}")

        yield

        # Shutdown
        if owns_client:
            await app.state.http_client.aclose()
        logger.info("Application shutdown...")

    app = FastAPI(lifespan=lifespan, title="Docker Hub Mirror", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.blocked_user_agents = settings.blocked_user_agents
    app.state.http_client = http_client

    app.middleware("http")(gatekeeper)
    app.include_router(dispatcher.router)
    return app


app = create_app()


def ensure_certs(cert_dir: str, common_name: str = "localhost"):
    """Self-signed pair for serving the registry API over HTTPS; reused once present."""
    directory = Path(cert_dir)
    directory.mkdir(parents=True, exist_ok=True)
    cert_path = directory / "cert.pem"
    key_path = directory / "key.pem"

    if cert_path.exists() and key_path.exists():
        return str(cert_path), str(key_path)

    logger.info(f"Generating self-signed certificate for {common_name} in {directory}...")
    command = [
        "openssl", "req", "-x509", "-nodes",
        "-newkey", "rsa:4096", "-days", "365",
        "-keyout", str(key_path), "-out", str(cert_path),
        "-subj", f"/CN={common_name}",
    ]
    try:
        subprocess.run(command, check=True, capture_output=True)
    except subprocess.CalledProcessError as e:
        logger.error(f"openssl failed ({e.returncode}): {e.stderr!r}")
        raise

    return str(cert_path), str(key_path)


def run():
    import uvicorn

    settings = get_settings()
    ssl_options = {}
    if settings.TLS_ENABLED:
        cert_file, key_file = ensure_certs(settings.CERT_DIR)
        ssl_options = {"ssl_certfile": cert_file, "ssl_keyfile": key_file}

    logger.info(f"Starting registry mirror on {settings.HOST}:{settings.PORT}...")
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        **ssl_options,
    )


if __name__ == "__main__":
    run()
