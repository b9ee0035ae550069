"""Service Directory SDK wrapper with error translation and connection management."""

import logging
import time
from collections.abc import Callable, Iterator
from functools import wraps
from typing import ParamSpec, TypeVar

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud.servicedirectory_v1beta1 import (
    Endpoint,
    Namespace,
    RegistrationServiceClient,
    Service,
)
from google.protobuf import field_mask_pb2

from constants import METADATA_UPDATE_MASK, OWNER_KEY, OWNER_VALUE
from metrics import SD_API_CALLS, SD_API_DURATION
from models import ListingError, ServiceDirectoryAPIError
from utils import get_resource_path, with_owner

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def api_call(
    error_class: type[ServiceDirectoryAPIError] = ServiceDirectoryAPIError,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator translating Service Directory errors and recording metrics.

    Each call is attempted exactly once.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            start = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except GoogleAPICallError as e:
                SD_API_CALLS.labels(operation=func.__name__, status="error").inc()
                logger.debug("Service Directory call %s failed: %s", func.__name__, e)
                raise error_class(f"Operation {func.__name__} failed: {e}") from e
            finally:
                SD_API_DURATION.labels(operation=func.__name__).observe(
                    time.monotonic() - start
                )
            SD_API_CALLS.labels(operation=func.__name__, status="success").inc()
            return result

        return wrapper

    return decorator


class ServiceDirectoryClient:
    """Wrapper around the Service Directory registration client.

    Resources are addressed by their names in the hierarchy; full resource
    paths are resolved at call time.
    """

    def __init__(
        self,
        credentials_path: str | None = None,
        timeout: float = 30.0,
        client: RegistrationServiceClient | None = None,
    ) -> None:
        """Initialize the Service Directory client.

        Args:
            credentials_path: Path to a service account JSON file
                (default: application default credentials)
            timeout: Timeout in seconds for every API call
            client: Already built registration client, mostly for tests
        """
        self.credentials_path = credentials_path
        self.timeout = timeout
        self._conn = client

    @property
    def conn(self) -> RegistrationServiceClient:
        """Get or create the registration client."""
        if self._conn is None:
            if self.credentials_path:
                logger.info(
                    "Connecting to Service Directory with credentials from %s",
                    self.credentials_path,
                )
                self._conn = RegistrationServiceClient.from_service_account_file(
                    self.credentials_path
                )
            else:
                logger.info("Connecting to Service Directory with default credentials")
                self._conn = RegistrationServiceClient()
        return self._conn

    def close(self) -> None:
        """Close the underlying transport."""
        if self._conn is not None:
            self._conn.transport.close()
            self._conn = None

    # -------------------------------------------------------------------------
    # Namespace operations
    # -------------------------------------------------------------------------

    @api_call()
    def get_namespace(self, namespace: str) -> Namespace | None:
        """Get a namespace by name, or None if it does not exist."""
        try:
            return self.conn.get_namespace(
                name=get_resource_path(namespace), retry=None, timeout=self.timeout
            )
        except NotFound:
            return None

    @api_call()
    def create_namespace(self, namespace: str) -> Namespace:
        """Create a namespace labelled as owned by the operator."""
        logger.info("Creating namespace: %s", namespace)
        return self.conn.create_namespace(
            parent=get_resource_path(),
            namespace=Namespace(name=namespace, labels={OWNER_KEY: OWNER_VALUE}),
            namespace_id=namespace,
            retry=None,
            timeout=self.timeout,
        )

    @api_call()
    def delete_namespace(self, namespace: str) -> None:
        """Delete a namespace and everything it contains."""
        logger.info("Deleting namespace: %s", namespace)
        self.conn.delete_namespace(
            name=get_resource_path(namespace), retry=None, timeout=self.timeout
        )

    # -------------------------------------------------------------------------
    # Service operations
    # -------------------------------------------------------------------------

    @api_call()
    def get_service(self, namespace: str, service: str) -> Service | None:
        """Get a service by name, or None if it does not exist."""
        try:
            return self.conn.get_service(
                name=get_resource_path(namespace, service),
                retry=None,
                timeout=self.timeout,
            )
        except NotFound:
            return None

    @api_call()
    def create_service(
        self, namespace: str, service: str, metadata: dict[str, str]
    ) -> Service:
        """Create a service tagged as owned by the operator."""
        logger.info("Creating service: %s/%s", namespace, service)
        return self.conn.create_service(
            parent=get_resource_path(namespace),
            service=Service(name=service, metadata=with_owner(metadata)),
            service_id=service,
            retry=None,
            timeout=self.timeout,
        )

    @api_call()
    def update_service_metadata(
        self, service: Service, metadata: dict[str, str]
    ) -> Service:
        """Replace the metadata of an existing service."""
        logger.info("Updating metadata of service: %s", service.name)
        return self.conn.update_service(
            service=Service(name=service.name, metadata=with_owner(metadata)),
            update_mask=field_mask_pb2.FieldMask(paths=METADATA_UPDATE_MASK),
            retry=None,
            timeout=self.timeout,
        )

    @api_call()
    def delete_service(self, namespace: str, service: str) -> None:
        """Delete a service and all of its endpoints."""
        logger.info("Deleting service: %s/%s", namespace, service)
        self.conn.delete_service(
            name=get_resource_path(namespace, service),
            retry=None,
            timeout=self.timeout,
        )

    @api_call(error_class=ListingError)
    def first_service(self, namespace: str) -> Service | None:
        """Return any one service of a namespace, or None if it is empty."""
        pager = self.conn.list_services(
            request={"parent": get_resource_path(namespace), "page_size": 1},
            retry=None,
            timeout=self.timeout,
        )
        return next(iter(pager), None)

    # -------------------------------------------------------------------------
    # Endpoint operations
    # -------------------------------------------------------------------------

    @api_call()
    def get_endpoint(
        self, namespace: str, service: str, endpoint: str
    ) -> Endpoint | None:
        """Get an endpoint by name, or None if it does not exist."""
        try:
            return self.conn.get_endpoint(
                name=get_resource_path(namespace, service, endpoint),
                retry=None,
                timeout=self.timeout,
            )
        except NotFound:
            return None

    @api_call()
    def create_endpoint(
        self,
        namespace: str,
        service: str,
        endpoint: str,
        address: str,
        port: int,
        metadata: dict[str, str],
    ) -> Endpoint:
        """Create an endpoint tagged as owned by the operator."""
        logger.info(
            "Creating endpoint: %s/%s/%s (%s:%d)",
            namespace,
            service,
            endpoint,
            address,
            port,
        )
        return self.conn.create_endpoint(
            parent=get_resource_path(namespace, service),
            endpoint=Endpoint(
                name=endpoint,
                address=address,
                port=port,
                metadata=with_owner(metadata),
            ),
            endpoint_id=endpoint,
            retry=None,
            timeout=self.timeout,
        )

    @api_call()
    def update_endpoint_metadata(
        self, endpoint: Endpoint, metadata: dict[str, str]
    ) -> Endpoint:
        """Replace the metadata of an existing endpoint."""
        logger.info("Updating metadata of endpoint: %s", endpoint.name)
        return self.conn.update_endpoint(
            endpoint=Endpoint(
                name=endpoint.name,
                address=endpoint.address,
                port=endpoint.port,
                metadata=with_owner(metadata),
            ),
            update_mask=field_mask_pb2.FieldMask(paths=METADATA_UPDATE_MASK),
            retry=None,
            timeout=self.timeout,
        )

    @api_call()
    def delete_endpoint(self, name: str) -> None:
        """Delete an endpoint by its full resource name."""
        logger.info("Deleting endpoint: %s", name)
        self.conn.delete_endpoint(name=name, retry=None, timeout=self.timeout)

    def iter_endpoints(self, namespace: str, service: str) -> Iterator[Endpoint]:
        """Lazily iterate over all endpoints of a service.

        Pages are fetched as iteration proceeds. A failure on any page
        raises ListingError rather than ending the iteration early.
        """
        parent = get_resource_path(namespace, service)
        start = time.monotonic()
        status = "success"
        try:
            pager = self.conn.list_endpoints(
                parent=parent, retry=None, timeout=self.timeout
            )
            yield from pager
        except GoogleAPICallError as e:
            status = "error"
            raise ListingError(f"Listing endpoints of {parent} failed: {e}") from e
        finally:
            # Also runs when the consumer stops iterating early
            SD_API_CALLS.labels(operation="iter_endpoints", status=status).inc()
            SD_API_DURATION.labels(operation="iter_endpoints").observe(
                time.monotonic() - start
            )
