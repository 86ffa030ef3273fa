"""
Runtime configuration for the operator and the admission webhook
"""

import logging
import os

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_NAMESPACES = "kube-system,kube-public,kube-node-lease"


class OperatorSettings(BaseModel):
    """Settings read from the process environment"""

    health_check_interval: float = Field(
        default=300.0, description="Seconds between health checks and binding drift checks", gt=0
    )
    registry_timeout: float = Field(
        default=30.0, description="Timeout in seconds for a single registry API call", gt=0
    )
    default_service_account: str = Field(
        default="default", description="Service account used when a namespace does not name one"
    )
    excluded_namespaces: frozenset[str] = Field(
        default=frozenset(DEFAULT_EXCLUDED_NAMESPACES.split(",")),
        description="Namespaces that never receive bindings",
    )
    rules_configmap: str = Field(
        default="harbor-image-rules", description="Per-namespace ConfigMap holding rewrite rules"
    )
    webhook_port: int = Field(default=9443, description="Admission webhook port", ge=1, le=65535)
    webhook_cert_dir: str = Field(
        default="/tmp/k8s-webhook-server/serving-certs",
        description="Directory containing tls.crt and tls.key for the webhook server",
    )
    liveness_endpoint: str = Field(
        default="http://0.0.0.0:8080/healthz", description="kopf liveness probe endpoint"
    )
    log_level: str = Field(default="INFO", description="Logging level")

    @classmethod
    def from_env(cls) -> "OperatorSettings":
        """Build settings from environment variables, falling back to defaults"""
        excluded = os.getenv("EXCLUDED_NAMESPACES", DEFAULT_EXCLUDED_NAMESPACES)
        return cls(
            health_check_interval=float(os.getenv("HEALTH_CHECK_INTERVAL", "300")),
            registry_timeout=float(os.getenv("REGISTRY_TIMEOUT", "30")),
            default_service_account=os.getenv("DEFAULT_SERVICE_ACCOUNT", "default"),
            excluded_namespaces=frozenset(ns.strip() for ns in excluded.split(",") if ns.strip()),
            rules_configmap=os.getenv("RULES_CONFIGMAP", "harbor-image-rules"),
            webhook_port=int(os.getenv("WEBHOOK_PORT", "9443")),
            webhook_cert_dir=os.getenv(
                "WEBHOOK_CERT_DIR", "/tmp/k8s-webhook-server/serving-certs"
            ),
            liveness_endpoint=os.getenv("LIVENESS_ENDPOINT", "http://0.0.0.0:8080/healthz"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


# Global settings instance
_settings: OperatorSettings | None = None


def get_settings() -> OperatorSettings:
    """Get the process-wide settings, loading them on first use"""
    global _settings
    if _settings is None:
        _settings = OperatorSettings.from_env()
        logger.debug("Loaded operator settings: %s", _settings)
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment"""
    global _settings
    _settings = None
