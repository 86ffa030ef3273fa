"""
Server Health Controller

Polls a Harbor server's health endpoint and records the outcome on the
HarborServerConfiguration status.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from harbor_operator.cluster import ClusterClient
from harbor_operator.config import OperatorSettings, get_settings
from harbor_operator.constants import HEALTH_CONDITION_TYPE, STATUS_UNHEALTHY
from harbor_operator.exceptions import log_operation_start, log_operation_success
from harbor_operator.models import Condition, HealthStatus, ServerConfigStatus
from harbor_operator.registry import RegistryServer, RegistryV1, build_registry_server

logger = logging.getLogger(__name__)

LegacyClientFactory = Callable[[RegistryServer], RegistryV1]


def status_from_health(health: HealthStatus) -> ServerConfigStatus:
    """One condition per reported component"""
    now = datetime.now(UTC).isoformat()
    conditions = []
    for component in health.components:
        if component.error:
            conditions.append(
                Condition(
                    type=component.name,
                    status="False",
                    reason=component.error,
                    message="An error occurred",
                    lastTransitionTime=now,
                )
            )
        else:
            conditions.append(Condition(type=component.name, status="True", lastTransitionTime=now))
    return ServerConfigStatus(status=health.status, conditions=conditions)


def status_from_failure(error: Exception) -> ServerConfigStatus:
    return ServerConfigStatus(
        status=STATUS_UNHEALTHY,
        conditions=[
            Condition(
                type=HEALTH_CONDITION_TYPE,
                status="False",
                reason=str(error),
                message="check health error",
                lastTransitionTime=datetime.now(UTC).isoformat(),
            )
        ],
    )


class ServerHealthController:
    """Checks Harbor health for one ServerConfig per call"""

    def __init__(
        self,
        cluster: ClusterClient,
        settings: OperatorSettings | None = None,
        legacy_client: LegacyClientFactory = RegistryV1,
    ) -> None:
        self.cluster = cluster
        self.settings = settings or get_settings()
        self.legacy_client = legacy_client

    async def check(self, name: str) -> ServerConfigStatus | None:
        """
        Probe the server and write the resulting status.

        Returns the written status, or None when there was nothing to check.

        Raises:
            ConfigurationError: If the access credential is missing or malformed
            ApiException: If writing the status fails (409 conflicts included)
            RegistryError: If the probe failed, after the unhealthy status was written
        """
        hsc = self.cluster.get_server_config(name)
        if hsc is None:
            logger.info("Harbor server configuration %s does not exist", name)
            return None
        if hsc.metadata.deleting:
            logger.info("Harbor server configuration %s is being deleted", name)
            return None

        log_operation_start("health check", "harbor server configuration", name)
        server = build_registry_server(self.cluster, hsc, timeout=self.settings.registry_timeout)

        probe_error: Exception | None = None
        try:
            health = await self.legacy_client(server).check_health()
            status = status_from_health(health)
        except Exception as e:
            logger.warning("Health check of %s (%s) failed: %s", name, server.host, e)
            probe_error = e
            status = status_from_failure(e)

        # Written for both outcomes
        self.cluster.patch_server_config_status(name, status)

        if probe_error is not None:
            raise probe_error

        log_operation_success("health check", "harbor server configuration", name)
        return status
