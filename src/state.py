"""Shared operator state - thread-safe singleton for Service Directory and Kubernetes clients."""

import threading
from dataclasses import dataclass, field

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from models import OperatorSettings
from servicedirectory_client import ServiceDirectoryClient
from sync import SyncCoordinator


@dataclass
class OperatorState:
    """Thread-safe operator state container.

    Lazily builds and hands out the resources shared by all handlers:
    - Operator settings
    - Service Directory client and the sync coordinator using it
    - Kubernetes API client

    Handlers go through the global `state` instance so that every
    reconciliation is serialized by the same coordinator lock.
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _settings: OperatorSettings | None = field(default=None, repr=False)
    _sd_client: ServiceDirectoryClient | None = field(default=None, repr=False)
    _coordinator: SyncCoordinator | None = field(default=None, repr=False)
    _k8s_core_api: k8s_client.CoreV1Api | None = field(default=None, repr=False)
    _k8s_configured: bool = field(default=False, repr=False)

    def _ensure_k8s_config(self) -> None:
        """Ensure Kubernetes configuration is loaded (must hold lock)."""
        if not self._k8s_configured:
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException:
                k8s_config.load_kube_config()
            self._k8s_configured = True

    def _ensure_settings(self) -> OperatorSettings:
        """Load settings from the environment once (must hold lock)."""
        if self._settings is None:
            self._settings = OperatorSettings.from_env()
        return self._settings

    def get_settings(self) -> OperatorSettings:
        """Get the operator settings (thread-safe)."""
        with self._lock:
            return self._ensure_settings()

    def get_coordinator(self) -> SyncCoordinator:
        """Get or create the sync coordinator (thread-safe)."""
        with self._lock:
            if self._coordinator is None:
                settings = self._ensure_settings()
                self._sd_client = ServiceDirectoryClient(
                    credentials_path=settings.credentials_path,
                    timeout=settings.api_timeout,
                )
                self._coordinator = SyncCoordinator(self._sd_client)
            return self._coordinator

    def get_k8s_core_api(self) -> k8s_client.CoreV1Api:
        """Get or create the Kubernetes CoreV1Api client (thread-safe)."""
        with self._lock:
            self._ensure_k8s_config()
            if self._k8s_core_api is None:
                self._k8s_core_api = k8s_client.CoreV1Api()
            return self._k8s_core_api

    def close(self) -> None:
        """Close all connections."""
        with self._lock:
            if self._sd_client is not None:
                self._sd_client.close()
                self._sd_client = None
            self._coordinator = None


# Global operator state singleton
state = OperatorState()


def get_coordinator() -> SyncCoordinator:
    """Get the shared sync coordinator."""
    return state.get_coordinator()


def get_k8s_core_api() -> k8s_client.CoreV1Api:
    """Get the shared Kubernetes CoreV1Api client."""
    return state.get_k8s_core_api()
