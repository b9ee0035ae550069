"""Kopf handlers mirroring Kubernetes Services into Service Directory."""

import logging
import os
import sys
from pathlib import Path
from typing import Any

# Add src directory to path for imports when run as script by Kopf
_src_dir = Path(__file__).parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import kopf
from kubernetes import client as k8s_client
from prometheus_client import start_http_server

from metrics import init_metrics, set_operator_info
from models import ConfigurationError, OperatorError
from resources.snapshot import build_snapshot
from state import state, get_coordinator, get_k8s_core_api
from utils import is_namespace_allowed

logger = logging.getLogger(__name__)

# Operator version
OPERATOR_VERSION = "0.1.0"


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure operator settings on startup."""
    # Reduce logging noise
    settings.posting.level = logging.WARNING

    try:
        operator_settings = state.get_settings()
    except ConfigurationError as e:
        raise kopf.PermanentError(f"Invalid configuration: {e}")

    # Start Prometheus metrics server
    metrics_port = int(os.environ.get("METRICS_PORT", "9090"))
    try:
        start_http_server(metrics_port)
        logger.info("Prometheus metrics server started on port %d", metrics_port)
    except OSError as e:
        logger.warning("Failed to start metrics server on port %d: %s", metrics_port, e)

    init_metrics()
    set_operator_info(
        OPERATOR_VERSION, operator_settings.project, operator_settings.region
    )

    logger.info(
        "CNWAN operator started (version %s, project %s, region %s)",
        OPERATOR_VERSION,
        operator_settings.project,
        operator_settings.region,
    )


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Clean up resources on operator shutdown."""
    logger.info("CNWAN operator shutting down")
    state.close()


def _namespace_labels(namespace: str) -> dict[str, str] | None:
    """Read the labels of a Kubernetes namespace, None if it is gone."""
    try:
        ns = get_k8s_core_api().read_namespace(namespace)
    except k8s_client.ApiException as e:
        if e.status == 404:
            return None
        raise
    return ns.metadata.labels or {}


@kopf.on.event("v1", "services")
def service_event(
    event: dict[str, Any],
    body: kopf.Body,
    name: str,
    namespace: str,
    **_: Any,
) -> None:
    """Synchronize a Service with Service Directory on every change."""
    settings = state.get_settings()
    deleted = event.get("type") == "DELETED"

    try:
        labels = _namespace_labels(namespace)
    except k8s_client.ApiException as e:
        logger.error(f"Failed to read namespace {namespace}: {e}")
        return

    # A Service deleted along with its namespace is still removed
    if labels is None and not deleted:
        logger.debug(f"Namespace {namespace} not found, ignoring {namespace}/{name}")
        return
    if labels is not None and not is_namespace_allowed(
        labels, settings.namespace_list_policy
    ):
        logger.debug(
            f"Ignoring service {namespace}/{name}: namespace excluded by "
            f"{settings.namespace_list_policy.value}"
        )
        return

    coordinator = get_coordinator()

    try:
        if deleted:
            logger.info(f"Removing service {namespace}/{name} from Service Directory")
            coordinator.delete(namespace, name)
            return

        snapshot = build_snapshot(body, settings.allowed_annotations)
        if not snapshot.metadata or not snapshot.endpoints:
            logger.info(f"Removing service {namespace}/{name} from Service Directory")
            coordinator.delete(namespace, name)
        else:
            logger.info(f"Registering service {namespace}/{name} in Service Directory")
            coordinator.create_or_update(snapshot)

    except OSError as e:
        logger.error(f"Failed to resolve addresses of {namespace}/{name}: {e}")
        kopf.warn(body, reason="ResolveFailed", message=str(e)[:200])
    except OperatorError as e:
        logger.error(f"Failed to synchronize service {namespace}/{name}: {e}")
        if not deleted:
            kopf.warn(body, reason="SyncFailed", message=str(e)[:200])


def _list_services(namespace: str) -> list[dict[str, Any]]:
    """List the Services of a namespace as plain manifests."""
    services = get_k8s_core_api().list_namespaced_service(namespace)
    api = k8s_client.ApiClient()
    return [api.sanitize_for_serialization(item) for item in services.items]


def _sync_namespace(namespace: str, watched: bool) -> None:
    """Register or deregister every Service of a namespace.

    Failures on one Service are logged and do not stop the others.
    """
    settings = state.get_settings()
    coordinator = get_coordinator()

    try:
        services = _list_services(namespace)
    except k8s_client.ApiException as e:
        logger.error(f"Failed to list services in namespace {namespace}: {e}")
        return

    for service in services:
        name = service["metadata"]["name"]
        try:
            if not watched:
                coordinator.delete(namespace, name)
                continue
            snapshot = build_snapshot(service, settings.allowed_annotations)
            if snapshot.metadata and snapshot.endpoints:
                coordinator.create_or_update(snapshot)
        except (OSError, OperatorError) as e:
            logger.error(f"Failed to synchronize service {namespace}/{name}: {e}")


@kopf.on.update("v1", "namespaces", field="metadata.labels")
def namespace_labels_changed(
    name: str,
    old: dict[str, str] | None,
    new: dict[str, str] | None,
    **_: Any,
) -> None:
    """Follow a namespace entering or leaving the watched set."""
    policy = state.get_settings().namespace_list_policy
    watched_before = is_namespace_allowed(old, policy)
    watched_now = is_namespace_allowed(new, policy)

    if watched_before == watched_now:
        return

    if watched_now:
        logger.info(f"Namespace {name} is now watched, registering its services")
    else:
        logger.info(f"Namespace {name} is no longer watched, removing its services")
    _sync_namespace(name, watched_now)


@kopf.on.delete("v1", "namespaces", optional=True)
def namespace_deleted(name: str, meta: dict[str, Any], **_: Any) -> None:
    """Remove the services of a deleted, watched namespace."""
    policy = state.get_settings().namespace_list_policy
    if not is_namespace_allowed(meta.get("labels"), policy):
        return

    logger.info(f"Namespace {name} deleted, removing its services")
    _sync_namespace(name, watched=False)


def main() -> None:
    """Entry point for running the operator."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The operator itself is started through the kopf CLI
    logger.info("Run the operator with: kopf run --all-namespaces src/handlers.py")
    sys.exit(0)


if __name__ == "__main__":
    main()
