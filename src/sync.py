"""Serialized entry points of the Service Directory sync engine."""

import logging
import threading
import time
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import TypeVar

from metrics import RECONCILE_DURATION, RECONCILE_IN_PROGRESS, RECONCILE_TOTAL
from models import EndpointSyncResult, ServiceSnapshot
from resources.service import create_or_update_service, delete_service
from servicedirectory_client import ServiceDirectoryClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncCoordinator:
    """Runs one reconciliation at a time against Service Directory.

    Both entry points hold the same lock for their whole duration, so
    reconciliations of any two services never overlap.
    """

    def __init__(
        self,
        client: ServiceDirectoryClient,
        lock: AbstractContextManager | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            client: Service Directory client
            lock: Mutual exclusion handle shared by both entry points
                (default: a new threading.Lock)
        """
        self.client = client
        self._lock = lock if lock is not None else threading.Lock()

    def _run(self, operation: str, func: Callable[[], T]) -> T:
        with self._lock:
            start_time = time.monotonic()
            RECONCILE_IN_PROGRESS.inc()
            try:
                result = func()
            except Exception:
                RECONCILE_TOTAL.labels(operation=operation, status="error").inc()
                raise
            finally:
                RECONCILE_IN_PROGRESS.dec()
                RECONCILE_DURATION.labels(operation=operation).observe(
                    time.monotonic() - start_time
                )
            RECONCILE_TOTAL.labels(operation=operation, status="success").inc()
            return result

    def create_or_update(self, snapshot: ServiceSnapshot) -> EndpointSyncResult | None:
        """Create or update a service and its endpoints from a snapshot."""
        logger.debug(
            "Reconciling service %s/%s with %d endpoints",
            snapshot.namespace,
            snapshot.name,
            len(snapshot.endpoints),
        )
        return self._run(
            "create_or_update",
            lambda: create_or_update_service(self.client, snapshot),
        )

    def delete(self, namespace: str, service: str) -> bool:
        """Delete a service, and its namespace when it becomes unused."""
        logger.debug("Deleting service %s/%s", namespace, service)
        return self._run(
            "delete",
            lambda: delete_service(self.client, namespace, service),
        )
