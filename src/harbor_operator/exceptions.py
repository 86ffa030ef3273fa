"""
Error handling utilities and custom exceptions for the Harbor operator
"""

import functools
import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import kopf
from kubernetes.client.rest import ApiException

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_DELAY = 1.0


class OperatorError(Exception):
    """Base exception for operator operations"""

    def __init__(self, message: str, operation: str, resource: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.resource = resource


class KubernetesOperationError(OperatorError):
    """Exception for Kubernetes API operation failures"""

    def __init__(
        self,
        message: str,
        operation: str,
        resource: str,
        api_exception: ApiException | None = None,
    ):
        super().__init__(message, operation, resource)
        self.api_exception = api_exception
        self.status_code = api_exception.status if api_exception else None


class ConfigurationError(OperatorError):
    """Declared intent is invalid and needs a human to fix it; retrying will not help"""


class RegistryError(OperatorError):
    """Harbor API call failed"""

    def __init__(
        self,
        message: str,
        operation: str,
        resource: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, operation, resource)
        self.status_code = status_code


class RegistryNotFoundError(RegistryError):
    """Harbor reported that the requested object does not exist"""


def is_not_found(error: BaseException) -> bool:
    """True for a Kubernetes 404"""
    return isinstance(error, ApiException) and error.status == 404


def is_conflict(error: BaseException) -> bool:
    """True for an optimistic-concurrency clash on write"""
    return isinstance(error, ApiException) and error.status == 409


def suggested_delay(error: ApiException) -> float | None:
    """
    Extract the delay the API server asks clients to wait before retrying.

    Looks at the Retry-After header first, then at details.retryAfterSeconds
    in the Status body.
    """
    headers = error.headers or {}
    retry_after = headers.get("Retry-After") if hasattr(headers, "get") else None
    if retry_after:
        try:
            return float(retry_after)
        except (TypeError, ValueError):
            logger.debug("Ignoring unparseable Retry-After header: %s", retry_after)

    if error.body:
        try:
            details = json.loads(error.body).get("details") or {}
        except (TypeError, ValueError, AttributeError):
            return None
        seconds = details.get("retryAfterSeconds")
        if isinstance(seconds, int | float) and seconds > 0:
            return float(seconds)

    return None


def handle_reconcile_errors(operation: str, resource_type: str) -> Any:
    """
    Decorator translating reconcile failures into kopf retry semantics.

    - ConfigurationError: logged and raised as kopf.PermanentError (no retry)
    - 409 conflicts and responses with a suggested delay: kopf.TemporaryError
    - 404 on the reconciled object: treated as already converged
    - anything else: logged and re-raised so kopf retries with backoff

    Args:
        operation: Description of the operation (e.g., "reconciling")
        resource_type: Type of resource being reconciled (e.g., "namespace")
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            resource_id = kwargs.get("name", "unknown")
            if kwargs.get("namespace"):
                resource_id = f"{kwargs['namespace']}/{resource_id}"

            try:
                return await func(*args, **kwargs)
            except (kopf.PermanentError, kopf.TemporaryError):
                raise
            except ConfigurationError as e:
                logger.error(
                    "Configuration error while %s %s '%s': %s",
                    operation,
                    resource_type,
                    resource_id,
                    e.message,
                )
                raise kopf.PermanentError(e.message) from e
            except ApiException as e:
                delay = suggested_delay(e)
                if is_conflict(e) or delay is not None:
                    logger.info(
                        "Retrying %s %s '%s' after conflict (%s)",
                        operation,
                        resource_type,
                        resource_id,
                        e.status,
                    )
                    raise kopf.TemporaryError(
                        f"Conflict while {operation} {resource_type} '{resource_id}'",
                        delay=delay or DEFAULT_CONFLICT_DELAY,
                    ) from e
                if is_not_found(e):
                    logger.info(
                        "%s '%s' disappeared while %s", resource_type, resource_id, operation
                    )
                    return None

                logger.error(
                    "Kubernetes API error while %s %s '%s' (%s): %s",
                    operation,
                    resource_type,
                    resource_id,
                    e.status,
                    e.reason,
                )
                raise
            except Exception as e:
                logger.error(
                    "Error while %s %s '%s': %s", operation, resource_type, resource_id, e
                )
                raise

        return wrapper  # type: ignore[return-value]

    return decorator


def log_operation_start(operation: str, resource_type: str, resource_id: str) -> None:
    """Log the start of a significant operation"""
    logger.info("Starting %s for %s '%s'", operation, resource_type, resource_id)


def log_operation_success(operation: str, resource_type: str, resource_id: str) -> None:
    """Log successful completion of an operation"""
    logger.info("Successfully completed %s for %s '%s'", operation, resource_type, resource_id)
