"""
Client for the Harbor v2.0 API: projects
"""

import logging

from harbor_operator.exceptions import RegistryError, RegistryNotFoundError
from harbor_operator.models import Project
from harbor_operator.registry.base import BaseRegistryClient, extract_id

logger = logging.getLogger(__name__)


class RegistryV2(BaseRegistryClient):
    """Harbor /api/v2.0 surface"""

    api_prefix = "/api/v2.0"

    async def get_project(self, name: str) -> Project:
        """
        Look a project up by exact name

        Raises:
            RegistryNotFoundError: If no project has that name
        """
        operation = "getting project"
        if not name:
            raise RegistryError("project name is empty", operation=operation)

        response = await self._request(
            "GET", "/projects", operation=operation, resource=name, params={"name": name}
        )
        # The name query is a fuzzy match
        for item in response.payload or []:
            if item.get("name") == name:
                return Project(project_id=int(item["project_id"]), name=item["name"])

        raise RegistryNotFoundError(
            f"no project with name {name} exists",
            operation=operation,
            resource=name,
            status_code=404,
        )

    async def ensure_project(self, name: str) -> int:
        """Return the id of the named project, creating a private one when it is missing"""
        try:
            project = await self.get_project(name)
            logger.info("Project %s already exists with id %d", name, project.project_id)
            return project.project_id
        except RegistryNotFoundError:
            pass

        operation = "creating project"
        response = await self._request(
            "POST",
            "/projects",
            operation=operation,
            resource=name,
            json_body={"project_name": name, "metadata": {"public": "false"}},
        )
        try:
            project_id = extract_id(response.location)
        except ValueError as e:
            raise RegistryError(
                f"project {name} created but its id is unknown: {e}",
                operation=operation,
                resource=name,
            ) from e

        logger.info("Created project %s with id %d", name, project_id)
        return project_id

    async def delete_project(self, name: str) -> None:
        project = await self.get_project(name)
        await self._request(
            "DELETE",
            f"/projects/{project.project_id}",
            operation="deleting project",
            resource=name,
        )
        logger.info("Deleted project %s (%d)", name, project.project_id)
