"""
Binding Lifecycle Controller

Drives a PullSecretBinding through its finalizer state machine: mint the pull
secret once, attach it to the service account, and clean up auto-provisioned
Harbor projects when the Binding goes away.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

import kopf
from kubernetes.client.models import V1OwnerReference
from kubernetes.client.rest import ApiException

from harbor_operator.cluster import ClusterClient
from harbor_operator.config import OperatorSettings, get_settings
from harbor_operator.constants import (
    ANNOTATION_PROJECT,
    ANNOTATION_ROBOT_CREDENTIAL,
    ANNOTATION_ROBOT_SECRET_REF,
    API_GROUP,
    API_VERSION,
    BINDING_FINALIZER,
    BINDING_KIND,
)
from harbor_operator.exceptions import ConfigurationError, is_conflict
from harbor_operator.models import Binding, BindingPhase, ObjectMeta, Robot, ServerConfig
from harbor_operator.name_utils import random_name
from harbor_operator.registry import (
    RegistryServer,
    RegistryV1,
    RegistryV2,
    build_registry_server,
    registry_host,
)
from harbor_operator.registry.pullsecret import build_pull_secret, read_robot_credential

logger = logging.getLogger(__name__)

LegacyClientFactory = Callable[[RegistryServer], RegistryV1]
ProjectClientFactory = Callable[[RegistryServer], RegistryV2]
EventSink = Callable[[Binding, str, str], None]

UNHEALTHY_SERVER_RETRY_DELAY = 60


class BindingState(str, Enum):
    ACTIVE_NO_FINALIZER = "ActiveNoFinalizer"
    ACTIVE_FINALIZED = "ActiveFinalized"
    DELETING = "Deleting"
    DONE = "Done"


class BindingAction(str, Enum):
    ADD_FINALIZER = "AddFinalizer"
    PROVISION = "Provision"
    CLEANUP = "Cleanup"
    NOTHING = "Nothing"


def binding_state(metadata: ObjectMeta) -> BindingState:
    has_finalizer = BINDING_FINALIZER in metadata.finalizers
    if metadata.deleting:
        return BindingState.DELETING if has_finalizer else BindingState.DONE
    return BindingState.ACTIVE_FINALIZED if has_finalizer else BindingState.ACTIVE_NO_FINALIZER


def next_action(state: BindingState) -> BindingAction:
    return {
        BindingState.ACTIVE_NO_FINALIZER: BindingAction.ADD_FINALIZER,
        BindingState.ACTIVE_FINALIZED: BindingAction.PROVISION,
        BindingState.DELETING: BindingAction.CLEANUP,
        BindingState.DONE: BindingAction.NOTHING,
    }[state]


def _log_event(binding: Binding, reason: str, message: str) -> None:
    logger.warning("%s/%s %s: %s", binding.namespace, binding.name, reason, message)


class BindingController:
    """Reconciles one PullSecretBinding per call"""

    def __init__(
        self,
        cluster: ClusterClient,
        settings: OperatorSettings | None = None,
        legacy_client: LegacyClientFactory = RegistryV1,
        project_client: ProjectClientFactory = RegistryV2,
        event_sink: EventSink | None = None,
    ) -> None:
        self.cluster = cluster
        self.settings = settings or get_settings()
        self.legacy_client = legacy_client
        self.project_client = project_client
        self.event_sink = event_sink or _log_event

    async def reconcile(self, namespace: str, name: str) -> BindingState | None:
        """Advance the Binding one step through its lifecycle and return the state reached"""
        binding = self.cluster.get_binding(namespace, name)
        if binding is None:
            logger.info("Binding %s/%s does not exist", namespace, name)
            return None

        state = binding_state(binding.metadata)
        action = next_action(state)
        logger.debug("Binding %s/%s is %s, next action %s", namespace, name, state, action)

        if action is BindingAction.NOTHING:
            return state

        if action is BindingAction.CLEANUP:
            await self._cleanup(binding)
            self._remove_finalizer(binding)
            return BindingState.DONE

        if action is BindingAction.ADD_FINALIZER:
            binding = self._add_finalizer(binding)

        await self._provision(binding)
        return BindingState.ACTIVE_FINALIZED

    def _add_finalizer(self, binding: Binding) -> Binding:
        finalizers = [*binding.metadata.finalizers, BINDING_FINALIZER]
        updated = self.cluster.patch_binding(
            binding.namespace,
            binding.name,
            {
                "metadata": {
                    "finalizers": finalizers,
                    "resourceVersion": binding.metadata.resourceVersion,
                }
            },
        )
        logger.info("Added finalizer to binding %s/%s", binding.namespace, binding.name)
        return updated

    def _remove_finalizer(self, binding: Binding) -> None:
        finalizers = [f for f in binding.metadata.finalizers if f != BINDING_FINALIZER]
        self.cluster.patch_binding(
            binding.namespace,
            binding.name,
            {
                "metadata": {
                    "finalizers": finalizers,
                    "resourceVersion": binding.metadata.resourceVersion,
                }
            },
        )
        logger.info("Removed finalizer from binding %s/%s", binding.namespace, binding.name)

    async def _cleanup(self, binding: Binding) -> None:
        """Harbor cleanup is best effort: failures are reported, never raised"""
        credential = binding.metadata.annotations.get(ANNOTATION_ROBOT_CREDENTIAL)
        if credential:
            self.cluster.delete_secret(binding.namespace, credential)

        project = binding.metadata.annotations.get(ANNOTATION_PROJECT)
        if not project:
            return

        try:
            hsc = self.cluster.get_server_config(binding.spec.harborServerConfig)
            if hsc is None:
                raise ConfigurationError(
                    f"harbor server configuration {binding.spec.harborServerConfig} does not exist",
                    operation="cleaning up binding",
                    resource=binding.name,
                )
            holder = self._live_holder(binding, project, hsc)
            if holder is not None:
                logger.info(
                    "Keeping project %s of binding %s/%s, still used by %s",
                    project,
                    binding.namespace,
                    binding.name,
                    holder.name,
                )
                return
            server = build_registry_server(
                self.cluster, hsc, timeout=self.settings.registry_timeout
            )
            await self.project_client(server).delete_project(project)
            logger.info(
                "Deleted project %s of binding %s/%s", project, binding.namespace, binding.name
            )
        except Exception as e:
            logger.error(
                "Failed to delete project %s of binding %s/%s: %s",
                project,
                binding.namespace,
                binding.name,
                e,
            )
            self.event_sink(binding, "CleanupFailed", f"failed to delete project {project}: {e}")

    def _live_holder(self, binding: Binding, project: str, hsc: ServerConfig) -> Binding | None:
        """Another non-deleting Binding of the namespace on the same Harbor using ``project``"""
        host = registry_host(hsc.spec.serverURL)
        for other in self.cluster.list_bindings(binding.namespace):
            if other.name == binding.name or other.metadata.deleting:
                continue
            if other.metadata.annotations.get(ANNOTATION_PROJECT) != project:
                continue
            if other.spec.harborServerConfig == hsc.name:
                return other
            other_hsc = self.cluster.get_server_config(other.spec.harborServerConfig)
            if other_hsc is not None and registry_host(other_hsc.spec.serverURL) == host:
                return other
        return None

    async def _provision(self, binding: Binding) -> None:
        hsc = self.cluster.get_server_config(binding.spec.harborServerConfig)
        if hsc is None:
            logger.info(
                "Harbor server configuration %s of binding %s/%s does not exist",
                binding.spec.harborServerConfig,
                binding.namespace,
                binding.name,
            )
            return
        if not hsc.healthy:
            raise kopf.TemporaryError(
                f"harbor server configuration {hsc.name} is {hsc.status.status}",
                delay=UNHEALTHY_SERVER_RETRY_DELAY,
            )

        account = self.cluster.get_service_account(binding.namespace, binding.spec.serviceAccount)
        if account is None:
            logger.info(
                "Service account %s/%s of binding %s does not exist",
                binding.namespace,
                binding.spec.serviceAccount,
                binding.name,
            )
            return

        try:
            if ANNOTATION_ROBOT_SECRET_REF not in binding.metadata.annotations:
                server = build_registry_server(
                    self.cluster, hsc, timeout=self.settings.registry_timeout
                )
                binding = await self._mint_pull_secret(binding, server)
            if ANNOTATION_ROBOT_CREDENTIAL in binding.metadata.annotations:
                binding = self._discard_robot_credential(binding)

            if binding.status.status is not BindingPhase.READY:
                self._set_status(binding, BindingPhase.READY, ignore_conflict=True)
        except Exception:
            if binding.status.status is not BindingPhase.ERROR:
                self._set_status(binding, BindingPhase.ERROR, ignore_conflict=False)
            raise

    async def _robot_with_token(self, binding: Binding, server: RegistryServer) -> Robot:
        """
        The robot and its token, from the credential Secret left by robot creation when
        the Binding references one, otherwise from Harbor.

        Raises:
            ConfigurationError: If neither source yields a token
        """
        project_id = _parse_id(binding, "projectId", binding.spec.projectId)
        robot_id = _parse_id(binding, "robotId", binding.spec.robotId)

        credential = binding.metadata.annotations.get(ANNOTATION_ROBOT_CREDENTIAL)
        if credential:
            data = self.cluster.read_secret_data(binding.namespace, credential)
            if data is None:
                raise ConfigurationError(
                    f"robot credential {binding.namespace}/{credential} does not exist",
                    operation="minting pull secret",
                    resource=binding.name,
                )
            return read_robot_credential(data, robot_id, f"{binding.namespace}/{credential}")

        robot = await self.legacy_client(server).get_robot_account(project_id, robot_id)
        if not robot.token:
            raise ConfigurationError(
                f"token of robot {robot.name} ({robot_id}) is no longer retrievable",
                operation="minting pull secret",
                resource=binding.name,
            )
        return robot

    async def _mint_pull_secret(self, binding: Binding, server: RegistryServer) -> Binding:
        """Turn the robot token into a pull secret once and hand it to the service account"""
        robot = await self._robot_with_token(binding, server)

        secret = build_pull_secret(
            name=random_name("regsecret"),
            namespace=binding.namespace,
            registry=registry_host(server.server_url),
            robot=robot,
            owner=_owner_reference(binding),
        )
        self.cluster.create_secret(secret)
        logger.info(
            "Created pull secret %s/%s for robot %s",
            binding.namespace,
            secret.metadata.name,
            robot.name,
        )

        self.cluster.attach_pull_secret(
            binding.namespace, binding.spec.serviceAccount, secret.metadata.name
        )
        # Only after the service account carries the secret
        return self.cluster.patch_binding(
            binding.namespace,
            binding.name,
            {"metadata": {"annotations": {ANNOTATION_ROBOT_SECRET_REF: secret.metadata.name}}},
        )

    def _discard_robot_credential(self, binding: Binding) -> Binding:
        credential = binding.metadata.annotations[ANNOTATION_ROBOT_CREDENTIAL]
        self.cluster.delete_secret(binding.namespace, credential)
        logger.info(
            "Deleted robot credential %s/%s of binding %s",
            binding.namespace,
            credential,
            binding.name,
        )
        return self.cluster.patch_binding(
            binding.namespace,
            binding.name,
            {"metadata": {"annotations": {ANNOTATION_ROBOT_CREDENTIAL: None}}},
        )

    def _set_status(self, binding: Binding, phase: BindingPhase, ignore_conflict: bool) -> None:
        status: dict[str, Any] = {
            "status": phase.value,
            "conditions": [c.model_dump(exclude_none=True) for c in binding.status.conditions],
        }
        try:
            self.cluster.patch_binding_status(binding.namespace, binding.name, status)
        except ApiException as e:
            if ignore_conflict and is_conflict(e):
                logger.warning(
                    "Conflict updating status of binding %s/%s", binding.namespace, binding.name
                )
                return
            if phase is BindingPhase.ERROR:
                logger.error(
                    "Failed to record error status of binding %s/%s: %s",
                    binding.namespace,
                    binding.name,
                    e,
                )
                return
            raise


def _parse_id(binding: Binding, field: str, value: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = 0
    if parsed <= 0:
        raise ConfigurationError(
            f"{field} {value!r} of binding {binding.namespace}/{binding.name} is not a valid id",
            operation="minting pull secret",
            resource=binding.name,
        )
    return parsed


def _owner_reference(binding: Binding) -> V1OwnerReference:
    return V1OwnerReference(
        api_version=f"{API_GROUP}/{API_VERSION}",
        kind=BINDING_KIND,
        name=binding.name,
        uid=binding.metadata.uid or "",
        controller=True,
        block_owner_deletion=True,
    )
