"""
Dynamic route loader for the admission webhook server
"""

import importlib
import logging
from pathlib import Path

from fastapi import APIRouter, FastAPI

logger = logging.getLogger(__name__)

ROUTES_PACKAGE = "harbor_operator.webhooks.routes"


def _route_modules() -> list[str]:
    routes_dir = Path(__file__).parent / "routes"
    if not routes_dir.exists():
        logger.warning("Routes directory not found: %s", routes_dir)
        return []

    return sorted(f.stem for f in routes_dir.glob("*.py") if not f.name.startswith("_"))


def load_routes(app: FastAPI) -> list[str]:
    """
    Include the router of every module in the routes package.

    Each route module must expose a 'router' attribute that is an APIRouter.

    Returns:
        Names of the modules whose routers were loaded
    """
    loaded = []
    for stem in _route_modules():
        module_name = f"{ROUTES_PACKAGE}.{stem}"
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            logger.error("Failed to import route module %s: %s", module_name, e)
            continue

        router = getattr(module, "router", None)
        if router is None:
            logger.debug("Module %s does not have a 'router' attribute, skipping", module_name)
        elif not isinstance(router, APIRouter):
            logger.warning(
                "Module %s has 'router' attribute but it's not an APIRouter instance", module_name
            )
        else:
            app.include_router(router)
            loaded.append(stem)
            logger.info("Loaded router from module: %s", module_name)

    return loaded


def get_available_routes() -> list[str]:
    """Route module names found in the routes package"""
    return _route_modules()
