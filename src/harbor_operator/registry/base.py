"""
Shared HTTP plumbing for the Harbor API clients
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from aiohttp import ClientTimeout

from harbor_operator.exceptions import RegistryError, RegistryNotFoundError
from harbor_operator.registry.server import RegistryServer

logger = logging.getLogger(__name__)


def extract_id(location: str | None) -> int:
    """Numeric id at the end of a Location header such as /api/v2.0/projects/12"""
    if not location:
        raise ValueError("empty location header")
    tail = location.rstrip("/").rsplit("/", 1)[-1]
    try:
        value = int(tail)
    except ValueError:
        raise ValueError(f"no numeric id in location {location!r}") from None
    if value <= 0:
        raise ValueError(f"invalid id in location {location!r}")
    return value


@dataclass
class RegistryResponse:
    status: int
    payload: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> str | None:
        return self.headers.get("Location")


class BaseRegistryClient:
    """Harbor client bound to one RegistryServer and one API base path"""

    api_prefix = "/api"

    def __init__(self, server: RegistryServer) -> None:
        self.server = server
        self.timeout = server.timeout

    def _url(self, path: str) -> str:
        return f"{self.server.base_url}{self.api_prefix}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        resource: str | None = None,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> RegistryResponse:
        """Send one request to Harbor

        Raises:
            RegistryNotFoundError: On HTTP 404
            RegistryError: On any other non-2xx status, timeout or connection failure
        """
        url = self._url(path)
        auth = aiohttp.BasicAuth(self.server.cred.access_key, self.server.cred.access_secret)
        ssl: bool | None = None if self.server.verify_tls else False

        try:
            logger.debug("%s %s", method, url)
            async with (
                aiohttp.ClientSession(auth=auth) as session,
                session.request(
                    method,
                    url,
                    json=json_body,
                    params=params,
                    ssl=ssl,
                    timeout=ClientTimeout(total=self.timeout),
                ) as response,
            ):
                text = await response.text()
                headers = {key: value for key, value in response.headers.items()}

                if response.status == 404:
                    raise RegistryNotFoundError(
                        f"{operation}: not found ({url})",
                        operation=operation,
                        resource=resource,
                        status_code=404,
                    )
                if response.status >= 400:
                    raise RegistryError(
                        f"{operation} failed: HTTP {response.status}: {text[:200]}",
                        operation=operation,
                        resource=resource,
                        status_code=response.status,
                    )

                payload = json.loads(text) if text else None
                return RegistryResponse(status=response.status, payload=payload, headers=headers)

        except TimeoutError:
            raise RegistryError(
                f"{operation}: timeout talking to {self.server.host}",
                operation=operation,
                resource=resource,
            ) from None
        except aiohttp.ClientError as e:
            raise RegistryError(
                f"{operation}: {e}", operation=operation, resource=resource
            ) from e
        except json.JSONDecodeError as e:
            raise RegistryError(
                f"{operation}: invalid JSON from {self.server.host}",
                operation=operation,
                resource=resource,
            ) from e
