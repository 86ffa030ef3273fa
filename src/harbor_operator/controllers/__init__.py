"""Reconcilers for server configurations, namespaces and bindings."""

from harbor_operator.controllers.binding import (
    BindingAction,
    BindingController,
    BindingState,
    binding_state,
    next_action,
)
from harbor_operator.controllers.namespace import NamespaceController
from harbor_operator.controllers.serverconfig import ServerHealthController

__all__ = [
    "BindingAction",
    "BindingController",
    "BindingState",
    "NamespaceController",
    "ServerHealthController",
    "binding_state",
    "next_action",
]
