"""Name generation utilities."""

import uuid as uuid_module


def random_suffix(length: int = 5) -> str:
    """Lowercase alphanumeric suffix usable inside Kubernetes and Harbor names."""
    return uuid_module.uuid4().hex[:length]


def random_name(prefix: str, length: int = 8) -> str:
    """Generate a name like ``binding-1f3a9c2e``.

    Args:
        prefix: Name prefix (e.g. "binding", "regsecret", "4k8s")
        length: Number of random characters appended

    Returns:
        The generated name
    """
    return f"{prefix}-{random_suffix(length)}"


def project_name_for_namespace(namespace: str) -> str:
    """Harbor project name auto-provisioned for a namespace: ``<namespace>-<5 random>``."""
    return f"{namespace}-{random_suffix(5)}"
