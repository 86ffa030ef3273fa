"""
Image rewrite rule resolution for pod admission

Rules come from three layers, highest precedence first:

1. the namespace's explicitly named ServerConfig merged with the namespace's
   rule ConfigMap (ServerConfig rules win on equal patterns)
2. the default ServerConfig, when its namespace selector matches
3. in ``auto`` mode, an implicit docker.io rule targeting the namespace's
   provisioned project

The first rule whose pattern matches an image's registry host wins.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import yaml

from harbor_operator.cluster import ClusterClient
from harbor_operator.config import OperatorSettings, get_settings
from harbor_operator.constants import ANNOTATION_PROJECT, ANNOTATION_REWRITTEN_BY
from harbor_operator.exceptions import ConfigurationError
from harbor_operator.intent import NamespaceIntent, RewriteMode
from harbor_operator.models import ImageRule, ServerConfig
from harbor_operator.registry.server import registry_host
from harbor_operator.schema_validator import validate_image_rules
from harbor_operator.webhooks.image_ref import InvalidImageReference, parse_image_reference

logger = logging.getLogger(__name__)

AUTO_RULE_PATTERN = r"^docker\.io$"
RULES_CONFIGMAP_KEY = "rules"


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


@dataclass(frozen=True)
class RewriteRule:
    registry: str
    project: str
    server_url: str

    def matches(self, host: str) -> bool:
        return compile_pattern(self.registry).search(host) is not None

    @property
    def prefix(self) -> str:
        return f"{registry_host(self.server_url)}/{self.project}"


def rules_for(server_url: str, rules: Iterable[ImageRule]) -> list[RewriteRule]:
    return [RewriteRule(rule.registry, rule.project, server_url) for rule in rules]


def merge_rules(*layers: Iterable[RewriteRule]) -> list[RewriteRule]:
    """Concatenate layers in precedence order, dropping patterns already seen"""
    merged: list[RewriteRule] = []
    seen: set[str] = set()
    for layer in layers:
        for rule in layer:
            if rule.registry in seen:
                continue
            seen.add(rule.registry)
            merged.append(rule)
    return merged


def rewrite_image(image: str, rules: list[RewriteRule]) -> tuple[str, RewriteRule] | None:
    """Rewritten image and the rule that matched, or None when nothing applies"""
    try:
        ref = parse_image_reference(image)
    except InvalidImageReference as e:
        logger.warning("Leaving unparseable image %r untouched: %s", image, e)
        return None

    for rule in rules:
        if rule.matches(ref.registry):
            return ref.relocate(rule.prefix), rule
    return None


def _escape_pointer(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def build_image_patch(pod: dict[str, Any], rules: list[RewriteRule]) -> list[dict[str, Any]]:
    """
    JSON patch rewriting the pod's container and init container images.

    Empty when no image changes.
    """
    ops: list[dict[str, Any]] = []
    servers: list[str] = []
    spec = pod.get("spec") or {}

    for field in ("containers", "initContainers"):
        for index, container in enumerate(spec.get(field) or []):
            image = container.get("image")
            if not image:
                continue
            result = rewrite_image(image, rules)
            if result is None:
                continue
            rewritten, rule = result
            if rewritten == image:
                continue
            logger.info("Rewriting %s image %s to %s", field, image, rewritten)
            ops.append(
                {"op": "replace", "path": f"/spec/{field}/{index}/image", "value": rewritten}
            )
            if rule.server_url not in servers:
                servers.append(rule.server_url)

    if not ops:
        return ops

    marker = ",".join(servers)
    annotations = (pod.get("metadata") or {}).get("annotations")
    if annotations is None:
        ops.append(
            {
                "op": "add",
                "path": "/metadata/annotations",
                "value": {ANNOTATION_REWRITTEN_BY: marker},
            }
        )
    else:
        ops.append(
            {
                "op": "add",
                "path": f"/metadata/annotations/{_escape_pointer(ANNOTATION_REWRITTEN_BY)}",
                "value": marker,
            }
        )
    return ops


class ImageRewriter:
    """Resolves the rules that apply to a namespace and rewrites pod images"""

    def __init__(self, cluster: ClusterClient, settings: OperatorSettings | None = None) -> None:
        self.cluster = cluster
        self.settings = settings or get_settings()

    def resolve_rules(self, intent: NamespaceIntent) -> list[RewriteRule]:
        """
        Raises:
            ConfigurationError: For rule sources that cannot be honoured
        """
        explicit: ServerConfig | None = None
        if intent.server_config:
            explicit = self.cluster.get_server_config(intent.server_config)
            if explicit is None:
                logger.warning(
                    "Namespace %s names missing harbor server configuration %s",
                    intent.name,
                    intent.server_config,
                )

        default = self.cluster.find_default_server_config()
        effective = explicit if intent.server_config else default

        layers: list[list[RewriteRule]] = []
        if explicit is not None:
            layers.append(rules_for(explicit.spec.serverURL, explicit.spec.rules))

        namespace_rules = self._namespace_rules(intent)
        if namespace_rules:
            if effective is None:
                logger.warning(
                    "Ignoring rule ConfigMap of namespace %s, "
                    "no harbor server configuration applies",
                    intent.name,
                )
            else:
                layers.append(rules_for(effective.spec.serverURL, namespace_rules))

        if default is not None:
            selector = default.spec.namespaceSelector
            if selector is None or selector.matches(intent.labels):
                layers.append(rules_for(default.spec.serverURL, default.spec.rules))

        if intent.rewrite_mode is RewriteMode.AUTO:
            layers.append([self._auto_rule(intent, effective)])

        return merge_rules(*layers)

    def _auto_rule(self, intent: NamespaceIntent, effective: ServerConfig | None) -> RewriteRule:
        if not intent.project:
            raise ConfigurationError(
                f"namespace {intent.name} rewrites images automatically "
                f"but has no {ANNOTATION_PROJECT} annotation",
                operation="resolving image rules",
                resource=intent.name,
            )
        if effective is None:
            raise ConfigurationError(
                f"namespace {intent.name} rewrites images automatically "
                "but no harbor server configuration applies",
                operation="resolving image rules",
                resource=intent.name,
            )
        return RewriteRule(AUTO_RULE_PATTERN, intent.project, effective.spec.serverURL)

    def _namespace_rules(self, intent: NamespaceIntent) -> list[ImageRule]:
        config_map = self.cluster.get_config_map(intent.name, self.settings.rules_configmap)
        if config_map is None or not config_map.data:
            return []

        raw = config_map.data.get(RULES_CONFIGMAP_KEY)
        if not raw:
            return []

        source = f"configmap {intent.name}/{self.settings.rules_configmap}"
        try:
            document = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"{source} is not valid YAML: {e}",
                operation="resolving image rules",
                resource=intent.name,
            ) from e

        if document is None:
            return []
        validate_image_rules(document, source)
        return [ImageRule.model_validate(item) for item in document]

    def mutate(self, namespace: str, pod: dict[str, Any]) -> list[dict[str, Any]]:
        """
        JSON patch for a pod being admitted into a namespace.

        Empty when rewriting is disabled or nothing matched.

        Raises:
            ConfigurationError: If the namespace's rewrite configuration is unusable
        """
        ns = self.cluster.get_namespace(namespace)
        if ns is None:
            logger.warning("Namespace %s of admitted pod does not exist", namespace)
            return []

        intent = NamespaceIntent.from_namespace(ns)
        if intent.rewrite_mode is RewriteMode.DISABLED:
            return []

        rules = self.resolve_rules(intent)
        if not rules:
            return []
        return build_image_patch(pod, rules)
