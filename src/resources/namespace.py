"""Namespace resource management."""

import logging

from google.cloud.servicedirectory_v1beta1 import Namespace

from metrics import NAMESPACE_ROLLBACKS
from models import ServiceDirectoryAPIError
from servicedirectory_client import ServiceDirectoryClient
from utils import ownership_tag

logger = logging.getLogger(__name__)


def ensure_namespace(
    client: ServiceDirectoryClient, name: str
) -> tuple[Namespace, bool]:
    """Ensure a namespace exists.

    Returns:
        Tuple of (namespace, created)
    """
    namespace = client.get_namespace(name)
    if namespace is not None:
        logger.debug(f"Namespace {name} already exists")
        return namespace, False

    namespace = client.create_namespace(name)
    logger.info(f"Created namespace {name}")
    return namespace, True


def rollback_namespace(client: ServiceDirectoryClient, name: str) -> None:
    """Remove a namespace created earlier in a reconciliation that failed.

    Failures are logged, never raised: the caller is already reporting
    the error that triggered the rollback.
    """
    try:
        client.delete_namespace(name)
        NAMESPACE_ROLLBACKS.labels(status="success").inc()
        logger.info(f"Rolled back namespace {name}")
    except ServiceDirectoryAPIError as e:
        NAMESPACE_ROLLBACKS.labels(status="error").inc()
        logger.error(
            f"Failed to delete namespace {name} after failing to create its "
            f"service: {e}"
        )


def delete_namespace_if_unused(client: ServiceDirectoryClient, name: str) -> bool:
    """Delete a namespace owned by the operator once it holds no service.

    Any remaining service keeps the namespace alive, whoever owns it.

    Returns:
        True if the namespace was deleted.

    Raises:
        ServiceDirectoryAPIError: if a lookup or the deletion fails
    """
    namespace = client.get_namespace(name)
    if namespace is None:
        logger.info(f"Namespace {name} does not exist anymore")
        return False

    if not ownership_tag(namespace):
        logger.info(f"Namespace {name} is not owned by the operator, keeping it")
        return False

    remaining = client.first_service(name)
    if remaining is not None:
        if ownership_tag(remaining):
            logger.info(f"Namespace {name} still contains services, keeping it")
        else:
            logger.info(
                f"Namespace {name} contains services not owned by the operator, "
                "keeping it"
            )
        return False

    client.delete_namespace(name)
    logger.info(f"Deleted namespace {name}")
    return True
