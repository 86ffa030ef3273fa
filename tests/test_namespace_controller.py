"""Tests for the Namespace Credential Controller."""

from unittest.mock import AsyncMock

import kopf
import pytest
from fakes import server_config_body

from harbor_operator.constants import (
    ANNOTATION_AUTO_PROVISIONED,
    ANNOTATION_HARBOR_SERVER,
    ANNOTATION_PROJECT,
    ANNOTATION_PROVISIONED_BY,
    ANNOTATION_ROBOT,
    ANNOTATION_ROBOT_CREDENTIAL,
    ANNOTATION_SERVICE_ACCOUNT,
)
from harbor_operator.controllers import NamespaceController
from harbor_operator.exceptions import ConfigurationError, RegistryError
from harbor_operator.registry.pullsecret import read_robot_credential, robot_credential_name


@pytest.fixture
def controller(cluster, settings, harbor):
    return NamespaceController(
        cluster, settings, legacy_client=harbor.client, project_client=harbor.client
    )


def binding_body(name, server_config="harbor-default", account="default"):
    return {
        "metadata": {"name": name},
        "spec": {
            "harborServerConfig": server_config,
            "serviceAccount": account,
            "projectId": "7",
            "robotId": "8",
        },
    }


class TestAutoProvisioning:
    """Namespaces without project and robot annotations."""

    @pytest.mark.asyncio
    async def test_provisions_project_robot_and_binding(self, controller, cluster, harbor):
        cluster.add_namespace("team-a")

        binding = await controller.reconcile("team-a")

        [project_name] = harbor.projects
        assert project_name.startswith("team-a-")
        assert harbor.count("create_robot_account") == 1

        annotations = cluster.namespaces["team-a"].metadata.annotations
        assert annotations[ANNOTATION_PROJECT] == project_name
        assert annotations[ANNOTATION_AUTO_PROVISIONED] == "true"
        assert annotations[ANNOTATION_PROVISIONED_BY] == "harbor-default"
        robot_id = int(annotations[ANNOTATION_ROBOT])

        credential = robot_credential_name("harbor-default", robot_id)
        assert binding.name.startswith("binding-")
        assert binding.spec.harborServerConfig == "harbor-default"
        assert binding.spec.serviceAccount == "default"
        assert binding.spec.projectId == str(harbor.projects[project_name])
        assert binding.spec.robotId == str(robot_id)
        assert binding.metadata.annotations == {
            ANNOTATION_PROJECT: project_name,
            ANNOTATION_ROBOT_CREDENTIAL: credential,
        }

        body = cluster.binding_body("team-a", binding.name)
        [owner] = body["metadata"]["ownerReferences"]
        assert owner["kind"] == "Namespace"
        assert owner["uid"] == "uid-team-a"

        # The creation time token is parked for the Binding controller
        secret = cluster.secrets[("team-a", credential)]
        robot = read_robot_credential(secret.data, robot_id, credential)
        assert robot.token == "s3cr3t"
        assert robot.name == f"robot$4k8s-{binding.spec.projectId}"
        assert secret.metadata.owner_references[0].uid == "uid-team-a"

    @pytest.mark.asyncio
    async def test_second_reconcile_reuses_binding(self, controller, cluster, harbor):
        cluster.add_namespace("team-a")

        first = await controller.reconcile("team-a")
        second = await controller.reconcile("team-a")

        assert second.name == first.name
        assert len(cluster.list_bindings("team-a")) == 1
        assert harbor.count("ensure_project") == 1
        assert harbor.count("create_robot_account") == 1

    @pytest.mark.asyncio
    async def test_lost_binding_reuses_unconsumed_robot(self, controller, cluster, harbor):
        cluster.add_namespace("team-a")
        first = await controller.reconcile("team-a")
        cluster.bindings.clear()

        second = await controller.reconcile("team-a")

        assert second.name != first.name
        assert second.spec.projectId == first.spec.projectId
        assert second.spec.robotId == first.spec.robotId
        assert second.metadata.annotations == first.metadata.annotations
        assert len(harbor.projects) == 1
        assert harbor.count("create_robot_account") == 1
        assert harbor.count("get_robot_account") == 0

    @pytest.mark.asyncio
    async def test_lost_binding_after_token_was_consumed(self, controller, cluster, harbor):
        cluster.add_namespace("team-a")
        first = await controller.reconcile("team-a")
        del cluster.secrets[("team-a", first.metadata.annotations[ANNOTATION_ROBOT_CREDENTIAL])]
        cluster.bindings.clear()

        second = await controller.reconcile("team-a")

        assert second.spec.projectId == first.spec.projectId
        assert second.spec.robotId != first.spec.robotId
        assert len(harbor.projects) == 1
        assert harbor.count("create_robot_account") == 2
        annotations = cluster.namespaces["team-a"].metadata.annotations
        assert annotations[ANNOTATION_ROBOT] == second.spec.robotId

    @pytest.mark.asyncio
    async def test_write_back_without_marker_is_reused(self, controller, cluster, harbor):
        project_id = harbor.add_project("team-a-0ld00")
        robot_id = harbor.add_robot(project_id)
        cluster.add_namespace(
            "team-a",
            {
                ANNOTATION_PROJECT: "team-a-0ld00",
                ANNOTATION_ROBOT: str(robot_id),
                ANNOTATION_AUTO_PROVISIONED: "true",
            },
        )

        binding = await controller.reconcile("team-a")

        assert binding.spec.projectId == str(project_id)
        assert binding.metadata.annotations[ANNOTATION_PROJECT] == "team-a-0ld00"
        assert harbor.count("get_project") == 0
        assert harbor.count("create_robot_account") == 1
        annotations = cluster.namespaces["team-a"].metadata.annotations
        assert annotations[ANNOTATION_PROVISIONED_BY] == "harbor-default"

    @pytest.mark.asyncio
    async def test_robot_failure_leaves_no_binding(self, controller, cluster, harbor):
        cluster.add_namespace("team-a")
        harbor.create_robot_account = AsyncMock(
            side_effect=RegistryError("boom", operation="creating robot", status_code=500)
        )

        with pytest.raises(RegistryError):
            await controller.reconcile("team-a")
        assert cluster.list_bindings("team-a") == []
        assert ANNOTATION_PROJECT not in (cluster.namespaces["team-a"].metadata.annotations or {})


class TestServerConfigSwitch:
    """Auto-provisioned namespaces moving to another ServerConfig."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("server_url", ["harbor.example.com", "harbor.other.io"])
    async def test_provisions_afresh(self, controller, cluster, harbor, server_url):
        cluster.add_server_config(server_config_body("harbor-b", server_url=server_url))
        cluster.add_namespace("team-a")
        first = await controller.reconcile("team-a")
        cluster.annotate_namespace("team-a", {ANNOTATION_HARBOR_SERVER: "harbor-b"})

        second = await controller.reconcile("team-a")

        assert second.spec.harborServerConfig == "harbor-b"
        assert [b.name for b in cluster.list_bindings("team-a")] == [second.name]
        old_project = first.metadata.annotations[ANNOTATION_PROJECT]
        new_project = second.metadata.annotations[ANNOTATION_PROJECT]
        assert new_project != old_project
        assert harbor.count("get_project") == 0
        assert harbor.count("create_robot_account") == 2

        annotations = cluster.namespaces["team-a"].metadata.annotations
        assert annotations[ANNOTATION_PROJECT] == new_project
        assert annotations[ANNOTATION_ROBOT] == second.spec.robotId
        assert annotations[ANNOTATION_PROVISIONED_BY] == "harbor-b"


class TestExplicitProject:
    """Namespaces naming an existing project and robot."""

    @pytest.mark.asyncio
    async def test_binding_uses_declared_ids(self, controller, cluster, harbor):
        project_id = harbor.add_project("shared")
        robot_id = harbor.add_robot(project_id)
        cluster.add_namespace(
            "team-b", {ANNOTATION_PROJECT: "shared", ANNOTATION_ROBOT: str(robot_id)}
        )

        binding = await controller.reconcile("team-b")

        assert binding.spec.projectId == str(project_id)
        assert binding.spec.robotId == str(robot_id)
        assert binding.metadata.annotations == {}
        assert harbor.count("create_robot_account") == 0
        assert harbor.count("ensure_project") == 0

    @pytest.mark.asyncio
    async def test_unknown_robot(self, controller, cluster, harbor):
        harbor.add_project("shared")
        cluster.add_namespace("team-b", {ANNOTATION_PROJECT: "shared", ANNOTATION_ROBOT: "999"})

        with pytest.raises(ConfigurationError):
            await controller.reconcile("team-b")
        assert cluster.list_bindings("team-b") == []

    @pytest.mark.asyncio
    async def test_unknown_project(self, controller, cluster):
        cluster.add_namespace("team-b", {ANNOTATION_PROJECT: "nope", ANNOTATION_ROBOT: "1"})

        with pytest.raises(ConfigurationError):
            await controller.reconcile("team-b")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("robot", ["abc", "0", "-4"])
    async def test_invalid_robot_id(self, controller, cluster, harbor, robot):
        harbor.add_project("shared")
        cluster.add_namespace("team-b", {ANNOTATION_PROJECT: "shared", ANNOTATION_ROBOT: robot})

        with pytest.raises(ConfigurationError):
            await controller.reconcile("team-b")
        assert harbor.count("get_project") == 0

    @pytest.mark.asyncio
    async def test_server_error_is_not_a_configuration_error(self, controller, cluster, harbor):
        harbor.get_project = AsyncMock(
            side_effect=RegistryError("unavailable", operation="getting project", status_code=503)
        )
        cluster.add_namespace("team-b", {ANNOTATION_PROJECT: "shared", ANNOTATION_ROBOT: "3"})

        with pytest.raises(RegistryError) as exc_info:
            await controller.reconcile("team-b")
        assert not isinstance(exc_info.value, ConfigurationError)

    @pytest.mark.asyncio
    async def test_half_declared_intent(self, controller, cluster):
        cluster.add_namespace("team-b", {ANNOTATION_PROJECT: "shared"})

        with pytest.raises(ConfigurationError):
            await controller.reconcile("team-b")


class TestServerConfigResolution:
    """Which ServerConfig a namespace binds to."""

    @pytest.mark.asyncio
    async def test_explicit_server_config(self, controller, cluster):
        cluster.add_server_config(server_config_body("other", server_url="harbor.other.io"))
        cluster.add_namespace("team-c", {ANNOTATION_HARBOR_SERVER: "other"})

        binding = await controller.reconcile("team-c")

        assert binding.spec.harborServerConfig == "other"

    @pytest.mark.asyncio
    async def test_stale_binding_is_replaced(self, controller, cluster):
        cluster.add_server_config(server_config_body("other"))
        cluster.add_namespace("team-c")
        cluster.add_binding("team-c", binding_body("binding-old", server_config="other"))

        binding = await controller.reconcile("team-c")

        names = [b.name for b in cluster.list_bindings("team-c")]
        assert names == [binding.name]
        assert binding.spec.harborServerConfig == "harbor-default"

    @pytest.mark.asyncio
    async def test_no_server_config_removes_bindings(self, controller, cluster, harbor):
        del cluster.server_configs["harbor-default"]
        cluster.add_namespace("team-c")
        cluster.add_binding("team-c", binding_body("binding-old"))

        assert await controller.reconcile("team-c") is None
        assert cluster.list_bindings("team-c") == []
        assert harbor.calls == []

    @pytest.mark.asyncio
    async def test_missing_named_server_config_removes_bindings(self, controller, cluster):
        cluster.add_namespace("team-c", {ANNOTATION_HARBOR_SERVER: "gone"})
        cluster.add_binding("team-c", binding_body("binding-old"))

        assert await controller.reconcile("team-c") is None
        assert cluster.list_bindings("team-c") == []

    @pytest.mark.asyncio
    async def test_ambiguous_default(self, controller, cluster):
        cluster.add_server_config(server_config_body("second-default", default=True))
        cluster.add_namespace("team-c")

        with pytest.raises(ConfigurationError):
            await controller.reconcile("team-c")


class TestServiceAccount:
    """Service account resolution."""

    @pytest.mark.asyncio
    async def test_named_service_account(self, controller, cluster):
        cluster.add_namespace("team-d", {ANNOTATION_SERVICE_ACCOUNT: "builder"})
        cluster.add_service_account("team-d", "builder")

        binding = await controller.reconcile("team-d")

        assert binding.spec.serviceAccount == "builder"

    @pytest.mark.asyncio
    async def test_missing_named_service_account(self, controller, cluster, harbor):
        cluster.add_namespace("team-d", {ANNOTATION_SERVICE_ACCOUNT: "builder"})

        with pytest.raises(ConfigurationError):
            await controller.reconcile("team-d")
        assert harbor.calls == []

    @pytest.mark.asyncio
    async def test_default_service_account_not_created_yet(self, controller, cluster, harbor):
        cluster.add_namespace("team-d", with_default_account=False)

        with pytest.raises(kopf.TemporaryError) as exc_info:
            await controller.reconcile("team-d")
        assert exc_info.value.delay == 5
        assert harbor.calls == []


class TestSkippedNamespaces:
    """Namespaces the controller leaves alone."""

    @pytest.mark.asyncio
    async def test_excluded(self, controller, cluster, harbor):
        cluster.add_namespace("kube-system")

        assert await controller.reconcile("kube-system") is None
        assert cluster.list_bindings("kube-system") == []
        assert harbor.calls == []

    @pytest.mark.asyncio
    async def test_missing(self, controller):
        assert await controller.reconcile("absent") is None

    @pytest.mark.asyncio
    async def test_deleting(self, controller, cluster, harbor):
        namespace = cluster.add_namespace("leaving")
        namespace.metadata.deletion_timestamp = "2026-01-01T00:00:00Z"

        assert await controller.reconcile("leaving") is None
        assert harbor.calls == []
