#!/usr/bin/env python3
"""
Harbor Pull-Secret Operator

Watches HarborServerConfigurations, Namespaces and PullSecretBindings, keeps
Harbor health on the server configurations, provisions Harbor projects and
robot accounts per namespace and mints pull secrets for service accounts.
"""

import logging
from typing import Any

import kopf
from kubernetes import client, config

from harbor_operator.cluster import ClusterClient
from harbor_operator.config import get_settings
from harbor_operator.constants import (
    API_GROUP,
    API_VERSION,
    BINDING_KIND,
    BINDING_PLURAL,
    SERVER_CONFIG_PLURAL,
)
from harbor_operator.controllers import (
    BindingController,
    NamespaceController,
    ServerHealthController,
)
from harbor_operator.exceptions import handle_reconcile_errors
from harbor_operator.models import Binding

# Configure logging
logging.basicConfig(
    level=get_settings().log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

HEALTH_CHECK_INTERVAL = get_settings().health_check_interval

# Global controllers (initialized in _initialize_kubernetes_clients)
cluster: ClusterClient | None = None
health_controller: ServerHealthController | None = None
namespace_controller: NamespaceController | None = None
binding_controller: BindingController | None = None


def warn_on_binding(binding: Binding, reason: str, message: str) -> None:
    """Report a warning event on a Binding"""
    body = {
        "apiVersion": f"{API_GROUP}/{API_VERSION}",
        "kind": BINDING_KIND,
        "metadata": {
            "name": binding.name,
            "namespace": binding.namespace,
            "uid": binding.metadata.uid,
        },
    }
    kopf.warn(body, reason=reason, message=message)


def _initialize_kubernetes_clients() -> None:
    """Load Kubernetes config and build the controllers."""
    global cluster, health_controller, namespace_controller, binding_controller

    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes config")

    settings = get_settings()
    cluster = ClusterClient(client.CoreV1Api(), client.CustomObjectsApi())
    health_controller = ServerHealthController(cluster, settings)
    namespace_controller = NamespaceController(cluster, settings)
    binding_controller = BindingController(cluster, settings, event_sink=warn_on_binding)


def _require(controller: Any) -> Any:
    if controller is None:
        raise RuntimeError("Kubernetes clients not initialized")
    return controller


@kopf.on.startup()
async def configure(settings: kopf.OperatorSettings, **_kwargs: Any) -> None:
    """Keep kopf's bookkeeping in goharbor.io annotations instead of status"""
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix="goharbor.io")
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix="goharbor.io")
    settings.posting.level = logging.WARNING
    logger.info("Harbor operator starting up")


# Server configurations


@kopf.on.create(API_GROUP, API_VERSION, SERVER_CONFIG_PLURAL)
@kopf.on.update(API_GROUP, API_VERSION, SERVER_CONFIG_PLURAL)
@kopf.on.resume(API_GROUP, API_VERSION, SERVER_CONFIG_PLURAL)
@handle_reconcile_errors("checking health of", "harbor server configuration")
async def server_config_changed(name: str, **_kwargs: Any) -> None:
    """Check Harbor health whenever a server configuration appears or changes"""
    await _require(health_controller).check(name)


@kopf.timer(API_GROUP, API_VERSION, SERVER_CONFIG_PLURAL, interval=HEALTH_CHECK_INTERVAL)
@handle_reconcile_errors("checking health of", "harbor server configuration")
async def server_config_health_cycle(name: str, **_kwargs: Any) -> None:
    """Re-check Harbor health on a fixed cycle"""
    await _require(health_controller).check(name)


# Namespaces


@kopf.on.create("", "v1", "namespaces")
@kopf.on.update("", "v1", "namespaces")
@kopf.on.resume("", "v1", "namespaces")
@handle_reconcile_errors("reconciling", "namespace")
async def namespace_changed(name: str, **_kwargs: Any) -> None:
    """Converge a namespace's bindings to its goharbor.io annotations"""
    await _require(namespace_controller).reconcile(name)


# Pull secret bindings


@kopf.on.create(API_GROUP, API_VERSION, BINDING_PLURAL)
@kopf.on.update(API_GROUP, API_VERSION, BINDING_PLURAL)
@kopf.on.resume(API_GROUP, API_VERSION, BINDING_PLURAL)
@handle_reconcile_errors("reconciling", "pull secret binding")
async def binding_changed(name: str, namespace: str, **_kwargs: Any) -> None:
    """Finalize and provision a binding"""
    await _require(binding_controller).reconcile(namespace, name)


@kopf.on.delete(API_GROUP, API_VERSION, BINDING_PLURAL)
@handle_reconcile_errors("finalizing", "pull secret binding")
async def binding_deleted(name: str, namespace: str, **_kwargs: Any) -> None:
    """Clean up external resources and release the binding's finalizer"""
    await _require(binding_controller).reconcile(namespace, name)


@kopf.timer(API_GROUP, API_VERSION, BINDING_PLURAL, interval=HEALTH_CHECK_INTERVAL)
@handle_reconcile_errors("re-checking", "pull secret binding")
async def binding_cycle(name: str, namespace: str, meta: Any, **_kwargs: Any) -> None:
    """Re-check steady state; deletion is left to the delete handler"""
    if meta.get("deletionTimestamp"):
        return
    await _require(binding_controller).reconcile(namespace, name)


def main() -> None:
    """Main entry point for the operator."""
    _initialize_kubernetes_clients()
    settings = get_settings()

    logger.info("Starting Harbor operator...")
    kopf.run(
        clusterwide=True,
        # Enable built-in health endpoints
        liveness_endpoint=settings.liveness_endpoint,
    )


if __name__ == "__main__":
    main()
