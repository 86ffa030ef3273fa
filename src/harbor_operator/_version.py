"""Version information for harbor-pullsecret-operator."""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("harbor-pullsecret-operator")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0+dev"
