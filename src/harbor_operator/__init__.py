"""
Harbor pull-secret operator

Binds namespaces to Harbor projects and robot accounts, mints pull secrets for
their service accounts, and rewrites pod images at admission time.
"""

from harbor_operator._version import __version__

__all__ = ["__version__"]
