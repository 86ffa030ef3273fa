"""
Namespace Credential Controller

Keeps exactly the PullSecretBindings a namespace's annotations ask for, and
makes sure the Harbor project and robot account behind them exist.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import kopf
from kubernetes.client.models import V1Namespace, V1OwnerReference

from harbor_operator.cluster import ClusterClient
from harbor_operator.config import OperatorSettings, get_settings
from harbor_operator.constants import (
    ANNOTATION_AUTO_PROVISIONED,
    ANNOTATION_PROJECT,
    ANNOTATION_PROVISIONED_BY,
    ANNOTATION_ROBOT,
    ANNOTATION_ROBOT_CREDENTIAL,
)
from harbor_operator.exceptions import (
    ConfigurationError,
    RegistryError,
    RegistryNotFoundError,
    log_operation_start,
    log_operation_success,
)
from harbor_operator.intent import NamespaceIntent, ProvisioningMode
from harbor_operator.models import Binding, BindingSpec, ObjectMeta, ServerConfig
from harbor_operator.name_utils import project_name_for_namespace, random_name
from harbor_operator.registry import (
    RegistryServer,
    RegistryV1,
    RegistryV2,
    build_registry_server,
)
from harbor_operator.registry.pullsecret import build_robot_credential, robot_credential_name

logger = logging.getLogger(__name__)

LegacyClientFactory = Callable[[RegistryServer], RegistryV1]
ProjectClientFactory = Callable[[RegistryServer], RegistryV2]

# The default service account is created asynchronously by the cluster
DEFAULT_ACCOUNT_RETRY_DELAY = 5


@dataclass(frozen=True)
class ResolvedProject:
    name: str
    project_id: int
    robot_id: int
    auto_provisioned: bool
    credential: str | None = None


def namespace_owner_reference(namespace: V1Namespace) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "name": namespace.metadata.name,
        "uid": namespace.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


class NamespaceController:
    """Reconciles one namespace per call"""

    def __init__(
        self,
        cluster: ClusterClient,
        settings: OperatorSettings | None = None,
        legacy_client: LegacyClientFactory = RegistryV1,
        project_client: ProjectClientFactory = RegistryV2,
    ) -> None:
        self.cluster = cluster
        self.settings = settings or get_settings()
        self.legacy_client = legacy_client
        self.project_client = project_client

    def is_excluded(self, name: str) -> bool:
        return name in self.settings.excluded_namespaces

    async def reconcile(self, name: str) -> Binding | None:
        """
        Converge the namespace's Bindings to its declared intent.

        Returns the Binding serving the namespace, or None when it needs none.

        Raises:
            ConfigurationError: For intent that cannot be satisfied without a human
            kopf.TemporaryError: While the default service account does not exist yet
            RegistryError: For Harbor failures, retried by the caller
        """
        namespace = self.cluster.get_namespace(name)
        if namespace is None:
            logger.info("Namespace %s does not exist", name)
            return None
        if namespace.metadata.deletion_timestamp is not None:
            logger.debug("Namespace %s is being deleted", name)
            return None
        if self.is_excluded(name):
            logger.debug("Namespace %s is excluded", name)
            return None

        intent = NamespaceIntent.from_namespace(namespace)
        hsc = self.cluster.resolve_server_config(intent.server_config)
        bindings = self.cluster.list_bindings(name)

        if hsc is None:
            for binding in bindings:
                logger.info(
                    "Removing binding %s/%s, no harbor server configuration applies",
                    name,
                    binding.name,
                )
                self.cluster.delete_binding(name, binding.name)
            return None

        account = intent.service_account_name(self.settings.default_service_account)
        self._require_service_account(intent, account)

        current: Binding | None = None
        for binding in bindings:
            if binding.spec.harborServerConfig != hsc.name:
                logger.info(
                    "Removing binding %s/%s pointing at %s instead of %s",
                    name,
                    binding.name,
                    binding.spec.harborServerConfig,
                    hsc.name,
                )
                self.cluster.delete_binding(name, binding.name)
            elif binding.spec.serviceAccount == account and current is None:
                current = binding

        if current is not None:
            logger.debug("Namespace %s already bound by %s", name, current.name)
            return current

        log_operation_start("credential provisioning", "namespace", name)
        server = build_registry_server(self.cluster, hsc, timeout=self.settings.registry_timeout)

        mode = intent.provisioning_mode()
        if mode is ProvisioningMode.EXPLICIT and not intent.auto_provisioned:
            resolved = await self._validate_explicit(server, intent)
        else:
            if intent.auto_provisioned and not intent.provisioned_for(hsc.name):
                logger.info(
                    "Namespace %s was provisioned by %s, provisioning afresh for %s",
                    name,
                    intent.provisioned_by,
                    hsc.name,
                )
            resolved = await self._auto_provision(server, namespace, hsc, intent)
            # Persisted before the Binding exists so a retry reuses the project
            self.cluster.annotate_namespace(
                name,
                {
                    ANNOTATION_PROJECT: resolved.name,
                    ANNOTATION_ROBOT: str(resolved.robot_id),
                    ANNOTATION_AUTO_PROVISIONED: "true",
                    ANNOTATION_PROVISIONED_BY: hsc.name,
                },
            )

        binding = self._create_binding(namespace, hsc, account, resolved)
        log_operation_success("credential provisioning", "namespace", name)
        return binding

    def _require_service_account(self, intent: NamespaceIntent, account: str) -> None:
        if self.cluster.get_service_account(intent.name, account) is not None:
            return
        if intent.service_account:
            raise ConfigurationError(
                f"service account {intent.name}/{account} does not exist",
                operation="resolving service account",
                resource=intent.name,
            )
        raise kopf.TemporaryError(
            f"service account {intent.name}/{account} does not exist yet",
            delay=DEFAULT_ACCOUNT_RETRY_DELAY,
        )

    async def _validate_explicit(
        self, server: RegistryServer, intent: NamespaceIntent
    ) -> ResolvedProject:
        project_name = intent.project or ""
        try:
            robot_id = int(intent.robot or "")
        except ValueError:
            robot_id = 0
        if robot_id <= 0:
            raise ConfigurationError(
                f"robot id {intent.robot!r} of namespace {intent.name} is not a valid id",
                operation="validating robot",
                resource=intent.name,
            )

        try:
            project = await self.project_client(server).get_project(project_name)
            await self.legacy_client(server).get_robot_account(project.project_id, robot_id)
        except RegistryError as e:
            if isinstance(e, RegistryNotFoundError) or (
                e.status_code is not None and 400 <= e.status_code < 500
            ):
                raise ConfigurationError(
                    f"invalid project {project_name!r} / robot {robot_id} "
                    f"for namespace {intent.name}: {e.message}",
                    operation="validating project",
                    resource=intent.name,
                ) from e
            raise

        return ResolvedProject(
            name=project.name,
            project_id=project.project_id,
            robot_id=robot_id,
            auto_provisioned=False,
        )

    async def _auto_provision(
        self,
        server: RegistryServer,
        namespace: V1Namespace,
        hsc: ServerConfig,
        intent: NamespaceIntent,
    ) -> ResolvedProject:
        """
        Ensure a project and a robot whose token is still at hand.

        Write-backs from an earlier pass against the same configuration are reused; a robot
        is only reused while its credential Secret has not been consumed yet.
        """
        reuse = intent.provisioned_for(hsc.name)
        project_name = (
            intent.project if reuse and intent.project else project_name_for_namespace(intent.name)
        )
        project_id = await self.project_client(server).ensure_project(project_name)

        if reuse and intent.robot and intent.robot.isdigit():
            credential = robot_credential_name(hsc.name, intent.robot)
            if self.cluster.read_secret_data(intent.name, credential) is not None:
                logger.info(
                    "Reusing robot %s of project %s for namespace %s",
                    intent.robot,
                    project_name,
                    intent.name,
                )
                return ResolvedProject(
                    name=project_name,
                    project_id=project_id,
                    robot_id=int(intent.robot),
                    auto_provisioned=True,
                    credential=credential,
                )

        robot = await self.legacy_client(server).create_robot_account(project_id)
        credential = robot_credential_name(hsc.name, robot.id)
        self.cluster.create_secret(
            build_robot_credential(
                name=credential,
                namespace=intent.name,
                robot=robot,
                owner=V1OwnerReference(
                    api_version="v1",
                    kind="Namespace",
                    name=namespace.metadata.name,
                    uid=namespace.metadata.uid,
                ),
            )
        )
        logger.info(
            "Provisioned project %s (%d) and robot %s for namespace %s",
            project_name,
            project_id,
            robot.name,
            intent.name,
        )
        return ResolvedProject(
            name=project_name,
            project_id=project_id,
            robot_id=robot.id,
            auto_provisioned=True,
            credential=credential,
        )

    def _create_binding(
        self,
        namespace: V1Namespace,
        hsc: ServerConfig,
        account: str,
        resolved: ResolvedProject,
    ) -> Binding:
        name = namespace.metadata.name
        annotations = {ANNOTATION_PROJECT: resolved.name} if resolved.auto_provisioned else {}
        if resolved.credential:
            annotations[ANNOTATION_ROBOT_CREDENTIAL] = resolved.credential
        binding = Binding(
            metadata=ObjectMeta(
                name=random_name("binding"), namespace=name, annotations=annotations
            ),
            spec=BindingSpec(
                harborServerConfig=hsc.name,
                serviceAccount=account,
                projectId=str(resolved.project_id),
                robotId=str(resolved.robot_id),
            ),
        )
        created = self.cluster.create_binding(
            name, binding.to_body([namespace_owner_reference(namespace)])
        )
        logger.info(
            "Created binding %s/%s for project %s and service account %s",
            name,
            created.name,
            resolved.name,
            account,
        )
        return created
