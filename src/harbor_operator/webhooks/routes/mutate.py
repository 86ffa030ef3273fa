"""
Mutating admission rewriting pod image references
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from harbor_operator.cluster import ClusterClient
from harbor_operator.config import OperatorSettings
from harbor_operator.exceptions import ConfigurationError
from harbor_operator.webhooks.admission import AdmissionReview, denied, errored, patched, review
from harbor_operator.webhooks.dependencies import get_cluster, get_operator_settings
from harbor_operator.webhooks.rewrite import ImageRewriter

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admission"])


@router.post("/mutate-image-path")
async def mutate_image_path(
    admission_review: AdmissionReview,
    cluster: ClusterClient = Depends(get_cluster),
    settings: OperatorSettings = Depends(get_operator_settings),
) -> dict[str, Any]:
    """Point pod images at the Harbor project their namespace maps to"""
    request = admission_review.request
    pod = request.object
    if not isinstance(pod, dict):
        return review(errored(request.uid, 400, "admission request carries no pod"))

    namespace = request.namespace or (pod.get("metadata") or {}).get("namespace")
    if not namespace:
        return review(errored(request.uid, 400, "admission request carries no namespace"))

    try:
        patch = ImageRewriter(cluster, settings).mutate(namespace, pod)
    except ConfigurationError as e:
        logger.warning("Rejecting pod in namespace %s: %s", namespace, e.message)
        return review(denied(request.uid, e.message))
    except Exception as e:
        logger.error("Failed to rewrite pod images in namespace %s: %s", namespace, e)
        return review(errored(request.uid, 500, e))

    return review(patched(request.uid, patch))
