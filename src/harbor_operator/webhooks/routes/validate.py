"""
Validating admission for HarborServerConfiguration objects
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import ValidationError

from harbor_operator.cluster import ClusterClient
from harbor_operator.exceptions import ConfigurationError
from harbor_operator.models import ServerConfig
from harbor_operator.schema_validator import validate_rule_pattern
from harbor_operator.webhooks.admission import (
    AdmissionResponse,
    AdmissionReview,
    allowed,
    denied,
    errored,
    review,
)
from harbor_operator.webhooks.dependencies import get_cluster

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admission"])


def check_server_config(
    uid: str, candidate: ServerConfig, cluster: ClusterClient
) -> AdmissionResponse:
    for rule in candidate.spec.rules:
        try:
            validate_rule_pattern(rule.registry, f"harbor server configuration {candidate.name}")
        except ConfigurationError as e:
            return errored(uid, 400, e.message)

    if not candidate.spec.default:
        return allowed(uid)

    try:
        existing = cluster.list_server_configs()
    except Exception as e:
        logger.error("Failed to list harbor server configurations: %s", e)
        return errored(uid, 500, f"list harbor server configurations error: {e}")

    for hsc in existing:
        if hsc.spec.default and hsc.name != candidate.name:
            message = (
                f'"{candidate.name}" can not be set as default, '
                f'"{hsc.name}" is the default harbor server configuration'
            )
            logger.info("Rejecting harbor server configuration: %s", message)
            return denied(uid, message)

    return allowed(uid)


@router.post("/validate-hsc")
async def validate_server_config(
    admission_review: AdmissionReview,
    cluster: ClusterClient = Depends(get_cluster),
) -> dict[str, Any]:
    """Allow at most one default HarborServerConfiguration and only valid rule patterns"""
    request = admission_review.request
    try:
        candidate = ServerConfig.from_object(request.object or {})
    except (ValidationError, AttributeError, TypeError) as e:
        logger.warning("Undecodable harbor server configuration in request %s: %s", request.uid, e)
        return review(errored(request.uid, 400, e))

    return review(check_server_config(request.uid, candidate, cluster))
