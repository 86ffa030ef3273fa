#!/usr/bin/env python3
"""
Harbor admission webhook server
"""

import logging
from datetime import UTC, datetime
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from kubernetes import config
from pydantic import BaseModel, Field

from harbor_operator._version import __version__
from harbor_operator.config import get_settings
from harbor_operator.webhooks.route_loader import load_routes

# Configure logging
logging.basicConfig(
    level=get_settings().log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


# Initialize Kubernetes client configuration at module level
try:
    config.load_incluster_config()
    logger.info("Loaded in-cluster Kubernetes configuration")
except config.ConfigException:
    try:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes configuration")
    except config.ConfigException:
        logger.error("Could not load Kubernetes configuration")


class HealthCheck(BaseModel):
    """Health check response"""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="Webhook version")
    service: str = Field(..., description="Service name")
    timestamp: datetime = Field(..., description="Check timestamp")


app = FastAPI(
    title="Harbor Operator Webhooks",
    description="Admission webhooks for Harbor server configurations and pod image rewriting",
    version=__version__,
)

# Dynamically load all route modules
load_routes(app)


@app.get("/health")
async def health_check() -> HealthCheck:
    """Health check endpoint"""
    return HealthCheck(
        status="healthy",
        version=__version__,
        service="harbor-operator-webhooks",
        timestamp=datetime.now(UTC),
    )


def main() -> None:
    """Main entry point for the webhook server."""
    settings = get_settings()
    cert_dir = Path(settings.webhook_cert_dir)
    certfile, keyfile = cert_dir / "tls.crt", cert_dir / "tls.key"

    if certfile.exists() and keyfile.exists():
        logger.info("Serving admission webhooks over TLS on port %d", settings.webhook_port)
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=settings.webhook_port,
            ssl_certfile=str(certfile),
            ssl_keyfile=str(keyfile),
            log_level=settings.log_level.lower(),
        )
    else:
        logger.warning("No serving certificates in %s, serving plain HTTP", cert_dir)
        uvicorn.run(
            app, host="0.0.0.0", port=settings.webhook_port, log_level=settings.log_level.lower()
        )


if __name__ == "__main__":
    main()
