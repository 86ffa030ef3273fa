"""
Harbor Operator Models

Pydantic models for the custom resources (HarborServerConfiguration and
PullSecretBinding) and for the Harbor API payloads the operator consumes
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Literal

from kubernetes.client import ApiClient
from pydantic import BaseModel, ConfigDict, Field, model_validator

from harbor_operator.constants import (
    API_GROUP,
    API_VERSION,
    BINDING_KIND,
    STATUS_UNHEALTHY,
    STATUS_UNKNOWN,
)

logger = logging.getLogger(__name__)

_api_client = ApiClient()


def to_plain(obj: Any) -> Any:
    """Convert kopf bodies, kubernetes client models and nested mappings to plain dicts"""
    if obj is None:
        return None
    if hasattr(obj, "openapi_types"):
        return _api_client.sanitize_for_serialization(obj)
    if isinstance(obj, Mapping):
        return {key: to_plain(value) for key, value in obj.items()}
    if isinstance(obj, list | tuple):
        return [to_plain(item) for item in obj]
    return obj


class _ResourceModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ImageRule(_ResourceModel):
    """Maps images whose registry host matches a pattern to a Harbor project"""

    registry: str = Field(..., description="Regular expression matched against the registry host")
    project: str = Field(..., description="Harbor project the matching images are served from")

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_string(cls, data: Any) -> Any:
        # "pattern,project" encoding used by earlier releases
        if isinstance(data, str):
            pattern, sep, project = data.rpartition(",")
            if not sep or not pattern.strip() or not project.strip():
                raise ValueError(f"invalid image rule {data!r}, expected 'pattern,project'")
            return {"registry": pattern.strip(), "project": project.strip()}
        return data


class AccessCredential(_ResourceModel):
    """Reference to the Secret holding the Harbor access key and secret"""

    namespace: str = Field(..., description="Namespace of the access secret")
    accessSecretRef: str = Field(..., description="Name of the access secret")


class NamespaceSelector(_ResourceModel):
    """Label selector gating which namespaces inherit default rules"""

    matchLabels: dict[str, str] = Field(default_factory=dict)

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        if not self.matchLabels:
            return True
        labels = labels or {}
        return any(labels.get(key) == value for key, value in self.matchLabels.items())


class ServerConfigSpec(_ResourceModel):
    serverURL: str = Field(..., description="Base URL of the Harbor server")
    insecure: bool = Field(default=False, description="Talk plain HTTP / skip TLS verification")
    default: bool = Field(default=False, description="Cluster-wide default server configuration")
    accessCredential: AccessCredential
    version: str | None = Field(default=None, description="Harbor server version")
    rules: list[ImageRule] = Field(default_factory=list)
    namespaceSelector: NamespaceSelector | None = Field(default=None)


class Condition(_ResourceModel):
    type: str
    status: Literal["True", "False", "Unknown"]
    reason: str | None = None
    message: str | None = None
    lastTransitionTime: str | None = None


class ServerConfigStatus(_ResourceModel):
    status: str = Field(default=STATUS_UNKNOWN)
    conditions: list[Condition] = Field(default_factory=list)


class ObjectMeta(_ResourceModel):
    """The subset of object metadata the controllers read"""

    name: str
    namespace: str | None = None
    uid: str | None = None
    resourceVersion: str | None = None
    deletionTimestamp: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    @property
    def deleting(self) -> bool:
        return self.deletionTimestamp is not None


class ServerConfig(_ResourceModel):
    """HarborServerConfiguration custom resource"""

    metadata: ObjectMeta
    spec: ServerConfigSpec
    status: ServerConfigStatus = Field(default_factory=ServerConfigStatus)

    @classmethod
    def from_object(cls, obj: Any) -> "ServerConfig":
        data = to_plain(obj)
        if data.get("status") is None:
            data.pop("status", None)
        return cls.model_validate(data)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def healthy(self) -> bool:
        """True once a health check has succeeded and reported a non-failing status"""
        return self.status.status not in (STATUS_UNKNOWN, STATUS_UNHEALTHY)


class BindingPhase(str, Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


class BindingSpec(_ResourceModel):
    harborServerConfig: str = Field(..., description="Name of the ServerConfig to bind to")
    serviceAccount: str = Field(..., description="Service account receiving the pull secret")
    projectId: str = Field(..., description="Harbor project id")
    robotId: str = Field(..., description="Harbor robot account id")


class BindingStatus(_ResourceModel):
    status: BindingPhase | None = None
    conditions: list[Condition] = Field(default_factory=list)


class Binding(_ResourceModel):
    """PullSecretBinding custom resource"""

    metadata: ObjectMeta
    spec: BindingSpec
    status: BindingStatus = Field(default_factory=BindingStatus)

    @classmethod
    def from_object(cls, obj: Any) -> "Binding":
        data = to_plain(obj)
        if data.get("status") is None:
            data.pop("status", None)
        return cls.model_validate(data)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

    def to_body(self, owner_references: list[dict[str, Any]] | None = None) -> dict[str, Any]:
        """Render the Binding as a creatable custom object body"""
        metadata: dict[str, Any] = {
            "name": self.metadata.name,
            "namespace": self.metadata.namespace,
        }
        if self.metadata.annotations:
            metadata["annotations"] = dict(self.metadata.annotations)
        if self.metadata.labels:
            metadata["labels"] = dict(self.metadata.labels)
        if owner_references:
            metadata["ownerReferences"] = owner_references

        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": BINDING_KIND,
            "metadata": metadata,
            "spec": self.spec.model_dump(),
        }


class Robot(BaseModel):
    """Harbor robot account"""

    id: int
    name: str
    token: str | None = Field(default=None, description="Only returned when the robot is created")


class Project(BaseModel):
    """Harbor project"""

    project_id: int
    name: str


class ComponentHealth(BaseModel):
    name: str
    status: str
    error: str | None = None


class HealthStatus(BaseModel):
    """Payload of Harbor's /health endpoint"""

    status: str
    components: list[ComponentHealth] = Field(default_factory=list)
