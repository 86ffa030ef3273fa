"""
Typed view of the goharbor.io annotations on a namespace
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from harbor_operator.constants import (
    ANNOTATION_AUTO_PROVISIONED,
    ANNOTATION_HARBOR_SERVER,
    ANNOTATION_IMAGE_REWRITE,
    ANNOTATION_PROJECT,
    ANNOTATION_PROVISIONED_BY,
    ANNOTATION_ROBOT,
    ANNOTATION_SERVICE_ACCOUNT,
)
from harbor_operator.exceptions import ConfigurationError
from harbor_operator.models import to_plain

logger = logging.getLogger(__name__)


class RewriteMode(str, Enum):
    RULES = "rules"
    AUTO = "auto"
    DISABLED = "disabled"

    @classmethod
    def parse(cls, value: str | None) -> "RewriteMode":
        if not value:
            return cls.DISABLED
        normalized = value.strip().lower()
        if normalized == "global":
            # Legacy spelling of rule-based rewriting
            return cls.RULES
        try:
            return cls(normalized)
        except ValueError:
            logger.warning("Unknown image rewrite mode %r, treating as disabled", value)
            return cls.DISABLED


class ProvisioningMode(str, Enum):
    EXPLICIT = "explicit"
    AUTO = "auto"


@dataclass(frozen=True)
class NamespaceIntent:
    """What a namespace asks of the operator, parsed once per reconcile or admission"""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    server_config: str | None = None
    service_account: str | None = None
    project: str | None = None
    robot: str | None = None
    auto_provisioned: bool = False
    provisioned_by: str | None = None
    rewrite_mode: RewriteMode = RewriteMode.DISABLED

    @classmethod
    def from_metadata(
        cls,
        name: str,
        labels: Mapping[str, str] | None,
        annotations: Mapping[str, str] | None,
    ) -> "NamespaceIntent":
        annotations = annotations or {}

        def _get(key: str) -> str | None:
            value = annotations.get(key)
            return value.strip() if value and value.strip() else None

        return cls(
            name=name,
            labels=dict(labels or {}),
            server_config=_get(ANNOTATION_HARBOR_SERVER),
            service_account=_get(ANNOTATION_SERVICE_ACCOUNT),
            project=_get(ANNOTATION_PROJECT),
            robot=_get(ANNOTATION_ROBOT),
            auto_provisioned=(_get(ANNOTATION_AUTO_PROVISIONED) or "").lower() == "true",
            provisioned_by=_get(ANNOTATION_PROVISIONED_BY),
            rewrite_mode=RewriteMode.parse(annotations.get(ANNOTATION_IMAGE_REWRITE)),
        )

    @classmethod
    def from_namespace(cls, namespace: Any) -> "NamespaceIntent":
        """Build from a V1Namespace or a namespace body mapping"""
        metadata = to_plain(namespace).get("metadata") or {}
        return cls.from_metadata(
            metadata.get("name", ""), metadata.get("labels"), metadata.get("annotations")
        )

    def provisioning_mode(self) -> ProvisioningMode:
        """
        Decide how project and robot are obtained.

        Raises:
            ConfigurationError: If only one of project/robot is annotated
        """
        if self.project and self.robot:
            return ProvisioningMode.EXPLICIT
        if not self.project and not self.robot:
            return ProvisioningMode.AUTO

        missing = ANNOTATION_ROBOT if self.project else ANNOTATION_PROJECT
        raise ConfigurationError(
            f"namespace {self.name} sets only one of {ANNOTATION_PROJECT}/{ANNOTATION_ROBOT}, "
            f"{missing} is missing",
            operation="resolving provisioning mode",
            resource=self.name,
        )

    def service_account_name(self, default: str) -> str:
        return self.service_account or default

    def provisioned_for(self, server_config: str) -> bool:
        """
        True when the project/robot annotations were written back by auto-provisioning
        against ``server_config``. Write-backs without a provisioned-by marker predate it
        and are taken to belong to the current configuration.
        """
        if not self.auto_provisioned:
            return False
        return self.provisioned_by is None or self.provisioned_by == server_config
