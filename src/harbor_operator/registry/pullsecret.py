"""
Docker config pull secrets minted from robot accounts, and the Secrets that carry
a robot token from creation to minting
"""

import base64
import binascii
import json
from dataclasses import dataclass, field

from kubernetes.client.models import V1ObjectMeta, V1OwnerReference, V1Secret

from harbor_operator.constants import (
    ANNOTATION_SECRET_OWNER,
    DEFAULT_OWNER,
    PULL_SECRET_DATA_KEY,
    PULL_SECRET_TYPE,
    ROBOT_CREDENTIAL_NAME_KEY,
    ROBOT_CREDENTIAL_TOKEN_KEY,
)
from harbor_operator.exceptions import ConfigurationError
from harbor_operator.models import Robot


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


@dataclass
class RegistryAuth:
    username: str
    password: str
    email: str

    def to_dict(self) -> dict[str, str]:
        return {
            "username": self.username,
            "password": self.password,
            "email": self.email,
            "auth": _b64(f"{self.username}:{self.password}"),
        }


@dataclass
class PullSecretDocument:
    """The ``{"auths": {...}}`` document stored under .dockerconfigjson"""

    auths: dict[str, RegistryAuth] = field(default_factory=dict)

    @classmethod
    def for_robot(cls, registry: str, robot: Robot) -> "PullSecretDocument":
        return cls(
            auths={
                registry: RegistryAuth(
                    username=robot.name,
                    password=robot.token or "",
                    email=f"{robot.name}@goharbor.io",
                )
            }
        )

    def to_json(self) -> str:
        return json.dumps({"auths": {host: auth.to_dict() for host, auth in self.auths.items()}})

    def encode(self) -> str:
        """Base64 of the JSON document, as it goes into Secret.data"""
        return _b64(self.to_json())


def build_pull_secret(
    name: str,
    namespace: str,
    registry: str,
    robot: Robot,
    owner: V1OwnerReference,
) -> V1Secret:
    """Pull secret for a robot, owned by the Binding that requested it"""
    return V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            annotations={ANNOTATION_SECRET_OWNER: DEFAULT_OWNER},
            owner_references=[owner],
        ),
        type=PULL_SECRET_TYPE,
        data={PULL_SECRET_DATA_KEY: PullSecretDocument.for_robot(registry, robot).encode()},
    )


def robot_credential_name(server_config: str, robot_id: int | str) -> str:
    return f"robot-{server_config}-{robot_id}"


def build_robot_credential(
    name: str,
    namespace: str,
    robot: Robot,
    owner: V1OwnerReference | None = None,
) -> V1Secret:
    """
    Opaque Secret holding a freshly created robot's name and token.

    Harbor returns the token only from robot creation, so it is parked here until the
    Binding controller has turned it into a pull secret.
    """
    return V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            annotations={ANNOTATION_SECRET_OWNER: DEFAULT_OWNER},
            owner_references=[owner] if owner else None,
        ),
        type="Opaque",
        data={
            ROBOT_CREDENTIAL_NAME_KEY: _b64(robot.name),
            ROBOT_CREDENTIAL_TOKEN_KEY: _b64(robot.token or ""),
        },
    )


def read_robot_credential(data: dict[str, str], robot_id: int, source: str) -> Robot:
    """
    Robot with token from the data of a robot credential Secret.

    Raises:
        ConfigurationError: If the name or token is missing or not valid base64
    """
    try:
        name = base64.b64decode(data.get(ROBOT_CREDENTIAL_NAME_KEY) or "").decode("utf-8")
        token = base64.b64decode(data.get(ROBOT_CREDENTIAL_TOKEN_KEY) or "").decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(
            f"robot credential {source} is not valid base64: {e}",
            operation="reading robot credential",
            resource=source,
        ) from e
    if not name or not token:
        raise ConfigurationError(
            f"robot credential {source} lacks a {ROBOT_CREDENTIAL_NAME_KEY} or "
            f"{ROBOT_CREDENTIAL_TOKEN_KEY}",
            operation="reading robot credential",
            resource=source,
        )
    return Robot(id=robot_id, name=name, token=token)
