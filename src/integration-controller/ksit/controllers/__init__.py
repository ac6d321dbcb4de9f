"""Reconcilers and the manager that schedules them."""

from .integration_reconciler import IntegrationReconciler, resolve_targets
from .manager import ControllerManager, WorkQueue
from .target_reconciler import TargetReconciler, target_identity

__all__ = [
    "ControllerManager",
    "IntegrationReconciler",
    "TargetReconciler",
    "WorkQueue",
    "resolve_targets",
    "target_identity",
]
