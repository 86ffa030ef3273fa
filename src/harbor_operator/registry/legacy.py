"""
Client for the legacy Harbor API (/api): health and robot accounts
"""

import logging

from harbor_operator.exceptions import RegistryError
from harbor_operator.models import ComponentHealth, HealthStatus, Robot
from harbor_operator.name_utils import random_name
from harbor_operator.registry.base import BaseRegistryClient, extract_id

logger = logging.getLogger(__name__)

ROBOT_DESCRIPTION = "automated by harbor automation operator"
ROBOT_NAME_PREFIX = "4k8s"


def _require_positive(value: int, label: str, operation: str) -> None:
    if value <= 0:
        raise RegistryError(f"invalid {label} {value}", operation=operation)


class RegistryV1(BaseRegistryClient):
    """Legacy Harbor API surface"""

    api_prefix = "/api"

    async def check_health(self) -> HealthStatus:
        response = await self._request("GET", "/health", operation="checking harbor health")
        payload = response.payload or {}
        return HealthStatus(
            status=payload.get("status", ""),
            components=[
                ComponentHealth(
                    name=component.get("name", ""),
                    status=component.get("status", ""),
                    error=component.get("error") or None,
                )
                for component in payload.get("components") or []
            ],
        )

    async def create_robot_account(self, project_id: int) -> Robot:
        """Create a never-expiring robot with push access to the project's repositories.

        The token is only ever returned by this call.
        """
        operation = "creating robot account"
        _require_positive(project_id, "project id", operation)

        body = {
            "access": [{"action": "push", "resource": f"/project/{project_id}/repository"}],
            "description": ROBOT_DESCRIPTION,
            "expires_at": -1,
            "name": random_name(ROBOT_NAME_PREFIX),
        }
        response = await self._request(
            "POST",
            f"/projects/{project_id}/robots",
            operation=operation,
            resource=str(project_id),
            json_body=body,
        )
        payload = response.payload or {}

        try:
            robot_id = extract_id(response.location)
        except ValueError:
            robot_id = int(payload.get("id") or 0)
            if robot_id <= 0:
                raise RegistryError(
                    f"robot created in project {project_id} but its id is unknown",
                    operation=operation,
                    resource=str(project_id),
                ) from None

        robot = Robot(
            id=robot_id, name=payload.get("name", body["name"]), token=payload.get("token")
        )
        logger.info("Created robot account %s (%d) in project %d", robot.name, robot.id, project_id)
        return robot

    async def get_robot_account(self, project_id: int, robot_id: int) -> Robot:
        operation = "getting robot account"
        _require_positive(project_id, "project id", operation)
        _require_positive(robot_id, "robot id", operation)

        response = await self._request(
            "GET",
            f"/projects/{project_id}/robots/{robot_id}",
            operation=operation,
            resource=f"{project_id}/{robot_id}",
        )
        payload = response.payload or {}
        return Robot(
            id=robot_id,
            name=payload.get("name", ""),
            token=payload.get("token") or payload.get("secret"),
        )

    async def delete_robot_account(self, project_id: int, robot_id: int) -> None:
        operation = "deleting robot account"
        _require_positive(project_id, "project id", operation)
        _require_positive(robot_id, "robot id", operation)

        await self._request(
            "DELETE",
            f"/projects/{project_id}/robots/{robot_id}",
            operation=operation,
            resource=f"{project_id}/{robot_id}",
        )
        logger.info("Deleted robot account %d in project %d", robot_id, project_id)
