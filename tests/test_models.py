"""Tests for the custom resource models."""

import pytest
from fakes import server_config_body
from kubernetes.client.models import V1Namespace, V1ObjectMeta
from pydantic import ValidationError

from harbor_operator.constants import ANNOTATION_PROJECT, BINDING_KIND
from harbor_operator.models import (
    Binding,
    BindingPhase,
    BindingSpec,
    ImageRule,
    NamespaceSelector,
    ObjectMeta,
    ServerConfig,
    to_plain,
)


class TestImageRule:
    """Structured and legacy rule forms."""

    def test_structured_rule(self):
        rule = ImageRule.model_validate({"registry": "^docker\\.io$", "project": "mirror"})
        assert rule.registry == "^docker\\.io$"
        assert rule.project == "mirror"

    def test_legacy_string_is_split_on_last_comma(self):
        rule = ImageRule.model_validate("^(quay|gcr)\\.io$,{1,2},mirror")
        assert rule.registry == "^(quay|gcr)\\.io$,{1,2}"
        assert rule.project == "mirror"

    @pytest.mark.parametrize("value", ["no-comma", ",project", "pattern,"])
    def test_invalid_legacy_string(self, value):
        with pytest.raises(ValidationError):
            ImageRule.model_validate(value)


class TestNamespaceSelector:
    """Namespace selector matching."""

    def test_empty_selector_matches_everything(self):
        assert NamespaceSelector().matches({"team": "a"})
        assert NamespaceSelector().matches(None)

    def test_any_pair_matches(self):
        selector = NamespaceSelector(matchLabels={"team": "a", "env": "prod"})
        assert selector.matches({"env": "prod"})
        assert not selector.matches({"env": "dev", "team": "b"})
        assert not selector.matches({})


class TestServerConfig:
    """ServerConfig parsing."""

    def test_from_object(self):
        hsc = ServerConfig.from_object(
            server_config_body("main", default=True, rules=["^docker\\.io$,lib"])
        )
        assert hsc.name == "main"
        assert hsc.spec.default is True
        assert hsc.spec.rules == [ImageRule(registry="^docker\\.io$", project="lib")]
        assert hsc.spec.accessCredential.accessSecretRef == "harbor-admin"

    @pytest.mark.parametrize(
        ("status", "healthy"),
        [(None, False), ("Unknown", False), ("unhealthy", False), ("healthy", True)],
    )
    def test_healthy(self, status, healthy):
        hsc = ServerConfig.from_object(server_config_body("main", status=status))
        assert hsc.healthy is healthy

    def test_missing_server_url_is_rejected(self):
        body = server_config_body("main")
        del body["spec"]["serverURL"]
        with pytest.raises(ValidationError):
            ServerConfig.from_object(body)


class TestBinding:
    """Binding parsing and rendering."""

    def test_to_body(self):
        binding = Binding(
            metadata=ObjectMeta(
                name="binding-1", namespace="team-a", annotations={ANNOTATION_PROJECT: "team-a-x"}
            ),
            spec=BindingSpec(
                harborServerConfig="main", serviceAccount="default", projectId="3", robotId="7"
            ),
        )
        owner = {"apiVersion": "v1", "kind": "Namespace", "name": "team-a", "uid": "u"}
        body = binding.to_body([owner])

        assert body["kind"] == BINDING_KIND
        assert body["metadata"]["ownerReferences"] == [owner]
        assert body["metadata"]["annotations"] == {ANNOTATION_PROJECT: "team-a-x"}
        assert body["spec"]["projectId"] == "3"
        assert "status" not in body

    def test_from_object_with_null_status(self):
        binding = Binding.from_object(
            {
                "metadata": {"name": "b", "namespace": "ns", "annotations": None},
                "spec": {
                    "harborServerConfig": "main",
                    "serviceAccount": "default",
                    "projectId": "1",
                    "robotId": "2",
                },
                "status": None,
            }
        )
        assert binding.status.status is None
        assert binding.metadata.annotations == {}

    def test_status_phase(self):
        binding = Binding.from_object(
            {
                "metadata": {"name": "b", "namespace": "ns"},
                "spec": {
                    "harborServerConfig": "main",
                    "serviceAccount": "default",
                    "projectId": "1",
                    "robotId": "2",
                },
                "status": {"status": "ready"},
            }
        )
        assert binding.status.status is BindingPhase.READY


def test_to_plain_converts_kubernetes_models():
    namespace = V1Namespace(metadata=V1ObjectMeta(name="team-a", labels={"a": "b"}))
    plain = to_plain(namespace)
    assert plain == {"metadata": {"name": "team-a", "labels": {"a": "b"}}}
