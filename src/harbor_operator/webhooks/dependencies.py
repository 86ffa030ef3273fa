"""
FastAPI dependencies shared by the admission routes
"""

from harbor_operator.cluster import ClusterClient
from harbor_operator.config import OperatorSettings, get_settings

_cluster: ClusterClient | None = None


def get_cluster() -> ClusterClient:
    """Process-wide cluster client, created on first use"""
    global _cluster
    if _cluster is None:
        _cluster = ClusterClient()
    return _cluster


def get_operator_settings() -> OperatorSettings:
    return get_settings()
