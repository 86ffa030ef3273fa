"""
Typed access to the Kubernetes objects the operator and webhook read and write
"""

import logging
from typing import Any

from kubernetes import client
from kubernetes.client.models import (
    V1ConfigMap,
    V1Namespace,
    V1Secret,
    V1ServiceAccount,
)
from kubernetes.client.rest import ApiException

from harbor_operator.constants import (
    API_GROUP,
    API_VERSION,
    BINDING_PLURAL,
    SERVER_CONFIG_PLURAL,
)
from harbor_operator.exceptions import ConfigurationError, is_not_found
from harbor_operator.models import Binding, ServerConfig, ServerConfigStatus

logger = logging.getLogger(__name__)


class ClusterClient:
    """Thin wrapper over CoreV1Api and CustomObjectsApi returning operator models"""

    def __init__(
        self,
        core: client.CoreV1Api | None = None,
        custom: client.CustomObjectsApi | None = None,
    ) -> None:
        self.core = core or client.CoreV1Api()
        self.custom = custom or client.CustomObjectsApi()

    # Server configurations (cluster scoped)

    def get_server_config(self, name: str) -> ServerConfig | None:
        try:
            obj = self.custom.get_cluster_custom_object(
                group=API_GROUP, version=API_VERSION, plural=SERVER_CONFIG_PLURAL, name=name
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise
        return ServerConfig.from_object(obj)

    def list_server_configs(self) -> list[ServerConfig]:
        result = self.custom.list_cluster_custom_object(
            group=API_GROUP, version=API_VERSION, plural=SERVER_CONFIG_PLURAL
        )
        return [ServerConfig.from_object(item) for item in result.get("items", [])]

    def find_default_server_config(self) -> ServerConfig | None:
        """
        Return the ServerConfig flagged as default, if any

        Raises:
            ConfigurationError: If more than one ServerConfig claims to be the default
        """
        defaults = [hsc for hsc in self.list_server_configs() if hsc.spec.default]
        if len(defaults) > 1:
            names = ", ".join(sorted(hsc.name for hsc in defaults))
            raise ConfigurationError(
                f"more than one default harbor server configuration: {names}",
                operation="resolving default server configuration",
            )
        return defaults[0] if defaults else None

    def resolve_server_config(self, explicit_name: str | None) -> ServerConfig | None:
        """Explicitly named ServerConfig first, otherwise the cluster default"""
        if explicit_name:
            hsc = self.get_server_config(explicit_name)
            if hsc is None:
                logger.info("Harbor server configuration %s does not exist", explicit_name)
            return hsc
        return self.find_default_server_config()

    def patch_server_config_status(self, name: str, status: ServerConfigStatus) -> None:
        self.custom.patch_cluster_custom_object_status(
            group=API_GROUP,
            version=API_VERSION,
            plural=SERVER_CONFIG_PLURAL,
            name=name,
            body={"status": status.model_dump(exclude_none=True)},
        )

    # Core objects

    def read_secret_data(self, namespace: str, name: str) -> dict[str, str] | None:
        """Base64 encoded data of a Secret, or None when it does not exist"""
        try:
            secret: V1Secret = self.core.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if is_not_found(e):
                return None
            raise
        return dict(secret.data or {})

    def create_secret(self, secret: V1Secret) -> None:
        self.core.create_namespaced_secret(namespace=secret.metadata.namespace, body=secret)

    def delete_secret(self, namespace: str, name: str) -> None:
        try:
            self.core.delete_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if not is_not_found(e):
                raise

    def get_namespace(self, name: str) -> V1Namespace | None:
        try:
            namespace: V1Namespace = self.core.read_namespace(name=name)
        except ApiException as e:
            if is_not_found(e):
                return None
            raise
        return namespace

    def annotate_namespace(self, name: str, annotations: dict[str, str]) -> None:
        self.core.patch_namespace(name=name, body={"metadata": {"annotations": annotations}})

    def get_service_account(self, namespace: str, name: str) -> V1ServiceAccount | None:
        try:
            account: V1ServiceAccount = self.core.read_namespaced_service_account(
                name=name, namespace=namespace
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise
        return account

    def attach_pull_secret(self, namespace: str, account_name: str, secret_name: str) -> None:
        """
        Append a pull secret to a service account's imagePullSecrets.

        Existing entries are kept. The write carries the resourceVersion that was read,
        so a concurrent change surfaces as a 409 conflict.
        """
        account = self.core.read_namespaced_service_account(name=account_name, namespace=namespace)
        existing = [ref.name for ref in (account.image_pull_secrets or [])]
        if secret_name in existing:
            return

        body = {
            "metadata": {"resourceVersion": account.metadata.resource_version},
            "imagePullSecrets": [{"name": name} for name in [*existing, secret_name]],
        }
        self.core.patch_namespaced_service_account(
            name=account_name, namespace=namespace, body=body
        )
        logger.info(
            "Attached pull secret %s to service account %s/%s", secret_name, namespace, account_name
        )

    def get_config_map(self, namespace: str, name: str) -> V1ConfigMap | None:
        try:
            config_map: V1ConfigMap = self.core.read_namespaced_config_map(
                name=name, namespace=namespace
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise
        return config_map

    # Pull secret bindings (namespaced)

    def list_bindings(self, namespace: str) -> list[Binding]:
        result = self.custom.list_namespaced_custom_object(
            group=API_GROUP, version=API_VERSION, namespace=namespace, plural=BINDING_PLURAL
        )
        return [Binding.from_object(item) for item in result.get("items", [])]

    def get_binding(self, namespace: str, name: str) -> Binding | None:
        try:
            obj = self.custom.get_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=BINDING_PLURAL,
                name=name,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise
        return Binding.from_object(obj)

    def create_binding(self, namespace: str, body: dict[str, Any]) -> Binding:
        created = self.custom.create_namespaced_custom_object(
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=BINDING_PLURAL,
            body=body,
        )
        return Binding.from_object(created)

    def delete_binding(self, namespace: str, name: str) -> None:
        try:
            self.custom.delete_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=BINDING_PLURAL,
                name=name,
            )
        except ApiException as e:
            if not is_not_found(e):
                raise

    def patch_binding(self, namespace: str, name: str, patch: dict[str, Any]) -> Binding:
        """Merge-patch binding metadata/spec and return the updated object"""
        updated = self.custom.patch_namespaced_custom_object(
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=BINDING_PLURAL,
            name=name,
            body=patch,
        )
        return Binding.from_object(updated)

    def patch_binding_status(self, namespace: str, name: str, status: dict[str, Any]) -> None:
        self.custom.patch_namespaced_custom_object_status(
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=BINDING_PLURAL,
            name=name,
            body={"status": status},
        )
