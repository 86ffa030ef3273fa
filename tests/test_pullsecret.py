"""Tests for docker config pull secret construction."""

import base64
import json

import pytest
from kubernetes.client.models import V1OwnerReference

from harbor_operator.constants import ANNOTATION_SECRET_OWNER, PULL_SECRET_DATA_KEY
from harbor_operator.exceptions import ConfigurationError
from harbor_operator.models import Robot
from harbor_operator.registry.pullsecret import (
    PullSecretDocument,
    build_pull_secret,
    build_robot_credential,
    read_robot_credential,
    robot_credential_name,
)


def test_document_layout():
    robot = Robot(id=3, name="robot$4k8s-abc", token="s3cr3t")
    document = json.loads(PullSecretDocument.for_robot("harbor.example.com", robot).to_json())

    auth = document["auths"]["harbor.example.com"]
    assert auth["username"] == "robot$4k8s-abc"
    assert auth["password"] == "s3cr3t"
    assert auth["email"] == "robot$4k8s-abc@goharbor.io"
    assert base64.b64decode(auth["auth"]).decode() == "robot$4k8s-abc:s3cr3t"


def test_build_pull_secret():
    robot = Robot(id=3, name="robot$4k8s-abc", token="s3cr3t")
    owner = V1OwnerReference(
        api_version="goharbor.goharbor.io/v1alpha1",
        kind="PullSecretBinding",
        name="binding-x",
        uid="uid-binding-x",
    )

    secret = build_pull_secret("regsecret-1", "team-a", "harbor.example.com", robot, owner)

    assert secret.type == "kubernetes.io/dockerconfigjson"
    assert secret.metadata.namespace == "team-a"
    assert secret.metadata.annotations == {ANNOTATION_SECRET_OWNER: "harbor-automation-4k8s"}
    assert secret.metadata.owner_references == [owner]

    decoded = json.loads(base64.b64decode(secret.data[PULL_SECRET_DATA_KEY]))
    assert list(decoded["auths"]) == ["harbor.example.com"]


class TestRobotCredential:
    """Secrets carrying a robot token from creation to minting."""

    def test_build_and_read(self):
        robot = Robot(id=3, name="robot$4k8s-abc", token="s3cr3t")
        name = robot_credential_name("harbor-default", robot.id)

        secret = build_robot_credential(name, "team-a", robot)

        assert name == "robot-harbor-default-3"
        assert secret.type == "Opaque"
        assert secret.metadata.owner_references is None
        assert read_robot_credential(secret.data, 3, name) == robot

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"username": base64.b64encode(b"robot$4k8s-abc").decode()},
            {"username": "###", "token": "not-base64"},
        ],
    )
    def test_unreadable(self, data):
        with pytest.raises(ConfigurationError):
            read_robot_credential(data, 3, "team-a/robot-harbor-default-3")
