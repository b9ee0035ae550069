"""Endpoint reconciliation for a single service."""

import logging

from google.cloud.servicedirectory_v1beta1 import Endpoint

from metrics import ENDPOINT_OPERATIONS
from models import (
    EndpointAction,
    EndpointSnapshot,
    EndpointSyncResult,
    ServiceDirectoryAPIError,
    ServiceSnapshot,
)
from servicedirectory_client import ServiceDirectoryClient
from utils import get_leaf_name, is_owned, metadata_equivalent

logger = logging.getLogger(__name__)


def get_endpoint_action(
    endpoint: Endpoint,
    desired: dict[str, EndpointSnapshot],
) -> tuple[bool, EndpointAction]:
    """Decide what to do with a remote endpoint.

    Returns:
        Tuple of (owned, action). Endpoints not owned by the operator are
        always left alone.
    """
    if not is_owned(endpoint.metadata):
        return False, EndpointAction.NONE

    snapshot = desired.get(get_leaf_name(endpoint.name))
    if snapshot is None:
        return True, EndpointAction.DELETE

    if not metadata_equivalent(endpoint.metadata, snapshot.metadata):
        return True, EndpointAction.UPDATE

    return True, EndpointAction.NONE


def create_endpoint(
    client: ServiceDirectoryClient,
    namespace: str,
    service: str,
    snapshot: EndpointSnapshot,
) -> Endpoint:
    """Create an endpoint under an existing service."""
    return client.create_endpoint(
        namespace,
        service,
        snapshot.name,
        snapshot.address,
        snapshot.port,
        snapshot.metadata,
    )


def update_endpoint(
    client: ServiceDirectoryClient,
    endpoint: Endpoint,
    snapshot: EndpointSnapshot,
) -> Endpoint:
    """Bring a remote endpoint's metadata in line with its snapshot."""
    return client.update_endpoint_metadata(endpoint, snapshot.metadata)


def reconcile_endpoints(
    client: ServiceDirectoryClient,
    snapshot: ServiceSnapshot,
) -> EndpointSyncResult:
    """Synchronize the endpoints of an existing service with a snapshot.

    Every remote endpoint is examined once: owned ones are updated or
    deleted as needed, foreign ones are skipped. Desired endpoints that
    were not seen remotely are created afterwards. A failure on one
    endpoint is logged and does not stop the others.

    The snapshot is not modified.

    Raises:
        ListingError: if the remote endpoints could not be listed
    """
    result = EndpointSyncResult()
    namespace, service = snapshot.namespace, snapshot.name
    remaining = set(snapshot.endpoints)

    for endpoint in client.iter_endpoints(namespace, service):
        name = get_leaf_name(endpoint.name)
        # An endpoint with this name exists already, whoever owns it.
        remaining.discard(name)

        owned, action = get_endpoint_action(endpoint, snapshot.endpoints)
        if not owned:
            logger.info(
                f"Endpoint {name} of {namespace}/{service} is not owned by the "
                "operator, skipping"
            )
            result.skipped.append(name)
            continue

        if action is EndpointAction.DELETE:
            try:
                client.delete_endpoint(endpoint.name)
                result.deleted.append(name)
                ENDPOINT_OPERATIONS.labels(operation="delete", status="success").inc()
            except ServiceDirectoryAPIError as e:
                logger.error(
                    f"Failed to delete endpoint {endpoint.name}, it must be "
                    f"deleted manually: {e}"
                )
                result.failed.append(name)
                ENDPOINT_OPERATIONS.labels(operation="delete", status="error").inc()

        elif action is EndpointAction.UPDATE:
            try:
                update_endpoint(client, endpoint, snapshot.endpoints[name])
                result.updated.append(name)
                ENDPOINT_OPERATIONS.labels(operation="update", status="success").inc()
            except ServiceDirectoryAPIError as e:
                logger.error(
                    f"Failed to update endpoint {endpoint.name}, it must be "
                    f"updated manually: {e}"
                )
                result.failed.append(name)
                ENDPOINT_OPERATIONS.labels(operation="update", status="error").inc()

    for name in sorted(remaining):
        try:
            create_endpoint(client, namespace, service, snapshot.endpoints[name])
            result.created.append(name)
            ENDPOINT_OPERATIONS.labels(operation="create", status="success").inc()
        except ServiceDirectoryAPIError as e:
            logger.error(
                f"Failed to create endpoint {name} in {namespace}/{service}, it "
                f"must be created manually: {e}"
            )
            result.failed.append(name)
            ENDPOINT_OPERATIONS.labels(operation="create", status="error").inc()

    return result
