"""Reconciliation engine: change detection, notifications, reminders and pruning."""

from vu_monitor.reconcile.changes import ChangeDetector
from vu_monitor.reconcile.files import FileDelivery
from vu_monitor.reconcile.notifier import NotificationReconciler
from vu_monitor.reconcile.overview import OverviewPublisher
from vu_monitor.reconcile.pruner import Pruner, prune_ledgers
from vu_monitor.reconcile.reminders import ReminderScheduler

__all__ = [
    "ChangeDetector",
    "FileDelivery",
    "NotificationReconciler",
    "OverviewPublisher",
    "Pruner",
    "ReminderScheduler",
    "prune_ledgers",
]
