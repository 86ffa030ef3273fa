"""
Connection data for one Harbor server
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

from harbor_operator.cluster import ClusterClient
from harbor_operator.constants import ACCESS_KEY, ACCESS_SECRET
from harbor_operator.exceptions import ConfigurationError
from harbor_operator.models import ServerConfig

logger = logging.getLogger(__name__)


def registry_host(server_url: str) -> str:
    """Host (and port) part of a server URL, with or without a scheme"""
    url = server_url.strip()
    if "://" not in url:
        url = f"//{url}"
    host = urlsplit(url).netloc
    return host or server_url.strip().rstrip("/")


@dataclass(frozen=True)
class AccessCred:
    """Credential data for accessing the Harbor server"""

    access_key: str
    access_secret: str

    @classmethod
    def from_secret_data(cls, data: dict[str, str] | None, source: str) -> "AccessCred":
        """
        Decode the access credential from a Secret's base64 data

        Raises:
            ConfigurationError: If a key is missing, empty or not valid base64
        """
        data = data or {}
        values: dict[str, str] = {}
        for key in (ACCESS_KEY, ACCESS_SECRET):
            raw = data.get(key)
            if not raw:
                raise ConfigurationError(
                    f"access secret {source} is missing a non-empty {key!r}",
                    operation="reading access credential",
                    resource=source,
                )
            try:
                decoded = base64.b64decode(raw, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise ConfigurationError(
                    f"access secret {source} has an undecodable {key!r}",
                    operation="reading access credential",
                    resource=source,
                ) from e
            if not decoded:
                raise ConfigurationError(
                    f"access secret {source} is missing a non-empty {key!r}",
                    operation="reading access credential",
                    resource=source,
                )
            values[key] = decoded

        return cls(access_key=values[ACCESS_KEY], access_secret=values[ACCESS_SECRET])


@dataclass(frozen=True)
class RegistryServer:
    """Immutable connection descriptor; registry clients are built from it per reconcile"""

    server_url: str
    cred: AccessCred
    insecure: bool = False
    timeout: float = 30.0

    @property
    def host(self) -> str:
        return registry_host(self.server_url)

    @property
    def base_url(self) -> str:
        if "://" in self.server_url:
            return self.server_url.rstrip("/")
        scheme = "http" if self.insecure else "https"
        return f"{scheme}://{self.host}"

    @property
    def verify_tls(self) -> bool:
        return not self.insecure


def build_registry_server(
    cluster: ClusterClient, hsc: ServerConfig, timeout: float = 30.0
) -> RegistryServer:
    """
    Resolve the access credential referenced by a ServerConfig

    Raises:
        ConfigurationError: If the access secret is missing or malformed
    """
    ref = hsc.spec.accessCredential
    source = f"{ref.namespace}/{ref.accessSecretRef}"
    data = cluster.read_secret_data(ref.namespace, ref.accessSecretRef)
    if data is None:
        raise ConfigurationError(
            f"access secret {source} of harbor server configuration {hsc.name} does not exist",
            operation="reading access credential",
            resource=hsc.name,
        )

    return RegistryServer(
        server_url=hsc.spec.serverURL,
        cred=AccessCred.from_secret_data(data, source),
        insecure=hsc.spec.insecure,
        timeout=timeout,
    )
