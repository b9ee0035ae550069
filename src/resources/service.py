"""Service resource management.

A service is only ever written to Service Directory together with at
least one endpoint, and only removed when the operator owns it and every
one of its endpoints.
"""

import logging

from google.cloud.servicedirectory_v1beta1 import Service

from models import EndpointSyncResult, ServiceDirectoryAPIError, ServiceSnapshot
from resources.endpoint import reconcile_endpoints
from resources.namespace import (
    delete_namespace_if_unused,
    ensure_namespace,
    rollback_namespace,
)
from servicedirectory_client import ServiceDirectoryClient
from utils import is_owned, metadata_equivalent, ownership_tag

logger = logging.getLogger(__name__)


def _create_service(
    client: ServiceDirectoryClient,
    snapshot: ServiceSnapshot,
    namespace_created: bool,
) -> Service:
    """Create the service, undoing a namespace created for it on failure."""
    try:
        service = client.create_service(
            snapshot.namespace, snapshot.name, snapshot.metadata
        )
    except ServiceDirectoryAPIError:
        if namespace_created:
            rollback_namespace(client, snapshot.namespace)
        raise

    logger.info(f"Created service {snapshot.namespace}/{snapshot.name}")
    return service


def create_or_update_service(
    client: ServiceDirectoryClient,
    snapshot: ServiceSnapshot,
) -> EndpointSyncResult | None:
    """Ensure a service and its endpoints match the snapshot.

    Args:
        client: Service Directory client
        snapshot: Desired state of the service

    Returns:
        The endpoint pass summary, or None if the snapshot has no endpoints
        and nothing was done.

    Raises:
        ServiceDirectoryAPIError: if the namespace or the service could not
            be read, created or updated
    """
    ns_name, name = snapshot.namespace, snapshot.name

    if not snapshot.endpoints:
        logger.info(
            f"Service {ns_name}/{name} has no endpoints and will not be "
            "registered"
        )
        return None

    _, namespace_created = ensure_namespace(client, ns_name)

    # A namespace that was just created cannot contain the service yet
    service = None if namespace_created else client.get_service(ns_name, name)

    if service is None:
        _create_service(client, snapshot, namespace_created)
    elif not metadata_equivalent(service.metadata, snapshot.metadata):
        if is_owned(service.metadata):
            logger.info(f"Metadata of service {ns_name}/{name} changed, updating")
            client.update_service_metadata(service, snapshot.metadata)
        else:
            logger.warning(
                f"Service {ns_name}/{name} is not owned by the operator, "
                "its metadata will not be updated"
            )

    result = reconcile_endpoints(client, snapshot)
    if result.failed:
        logger.warning(
            f"Service {ns_name}/{name} processed with endpoint failures: "
            f"{result.failed}"
        )
    else:
        logger.info(f"Service {ns_name}/{name} processed successfully")
    logger.debug(f"Endpoint changes for {ns_name}/{name}: {result.to_dict()}")
    return result


def delete_service(
    client: ServiceDirectoryClient,
    namespace: str,
    name: str,
) -> bool:
    """Delete a service owned by the operator, then its namespace if unused.

    Nothing is deleted when the service, or any of its endpoints, is not
    owned by the operator.

    Returns:
        True if the service was deleted.

    Raises:
        ServiceDirectoryAPIError: if a lookup, a listing or a deletion fails
    """
    service = client.get_service(namespace, name)
    if service is None:
        logger.info(f"Service {namespace}/{name} does not exist, nothing to delete")
        return False

    if not ownership_tag(service):
        logger.info(
            f"Service {namespace}/{name} is not owned by the operator and will "
            "not be deleted"
        )
        return False

    for endpoint in client.iter_endpoints(namespace, name):
        if not ownership_tag(endpoint):
            logger.info(
                f"Service {namespace}/{name} contains endpoints not owned by "
                "the operator and will not be deleted"
            )
            return False

    client.delete_service(namespace, name)
    logger.info(f"Deleted service {namespace}/{name}")

    delete_namespace_if_unused(client, namespace)
    return True
