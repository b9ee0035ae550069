"""Shared fixtures: an in-memory Service Directory behind the client interface."""

import pytest
from google.cloud.servicedirectory_v1beta1 import Endpoint, Namespace, Service

from models import ListingError, ServiceDirectoryAPIError
from utils import get_leaf_name, get_resource_path, with_owner


class FakeServiceDirectoryClient:
    """In-memory stand-in for ServiceDirectoryClient.

    Records every call as a tuple (operation, target) and raises
    ServiceDirectoryAPIError for operations registered with fail().
    """

    def __init__(self) -> None:
        self.namespaces: dict[str, Namespace] = {}
        self.services: dict[tuple[str, str], Service] = {}
        self.endpoints: dict[tuple[str, str, str], Endpoint] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: set[tuple[str, str | None]] = set()

    # -- test helpers ---------------------------------------------------------

    def fail(self, operation: str, target: str | None = None) -> None:
        """Make an operation fail, optionally only for one target."""
        self._failures.add((operation, target))

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def mutating_calls(self) -> list[tuple[str, str]]:
        return [
            call
            for call in self.calls
            if call[0].startswith(("create", "update", "delete"))
        ]

    def add_namespace(self, ns: str, labels: dict[str, str] | None = None) -> None:
        self.namespaces[ns] = Namespace(name=get_resource_path(ns), labels=labels or {})

    def add_service(
        self, ns: str, serv: str, metadata: dict[str, str] | None = None
    ) -> None:
        self.services[(ns, serv)] = Service(
            name=get_resource_path(ns, serv), metadata=metadata or {}
        )

    def add_endpoint(
        self,
        ns: str,
        serv: str,
        endp: str,
        metadata: dict[str, str] | None = None,
        address: str = "10.0.0.1",
        port: int = 80,
    ) -> None:
        self.endpoints[(ns, serv, endp)] = Endpoint(
            name=get_resource_path(ns, serv, endp),
            address=address,
            port=port,
            metadata=metadata or {},
        )

    def _record(
        self,
        operation: str,
        target: str,
        error: type[ServiceDirectoryAPIError] = ServiceDirectoryAPIError,
    ) -> None:
        self.calls.append((operation, target))
        if (operation, target) in self._failures or (operation, None) in self._failures:
            raise error(f"Operation {operation} failed: injected")

    # -- client interface -----------------------------------------------------

    def get_namespace(self, namespace):
        self._record("get_namespace", namespace)
        return self.namespaces.get(namespace)

    def create_namespace(self, namespace):
        self._record("create_namespace", namespace)
        self.add_namespace(namespace, with_owner({}))
        return self.namespaces[namespace]

    def delete_namespace(self, namespace):
        self._record("delete_namespace", namespace)
        self.namespaces.pop(namespace, None)
        for key in [k for k in self.services if k[0] == namespace]:
            self.services.pop(key)
        for key in [k for k in self.endpoints if k[0] == namespace]:
            self.endpoints.pop(key)

    def get_service(self, namespace, service):
        self._record("get_service", service)
        return self.services.get((namespace, service))

    def create_service(self, namespace, service, metadata):
        self._record("create_service", service)
        self.add_service(namespace, service, with_owner(metadata))
        return self.services[(namespace, service)]

    def update_service_metadata(self, service, metadata):
        name = get_leaf_name(service.name)
        self._record("update_service", name)
        ns = service.name.split("/")[5]
        self.add_service(ns, name, with_owner(metadata))
        return self.services[(ns, name)]

    def delete_service(self, namespace, service):
        self._record("delete_service", service)
        self.services.pop((namespace, service), None)
        for key in [k for k in self.endpoints if k[:2] == (namespace, service)]:
            self.endpoints.pop(key)

    def first_service(self, namespace):
        self._record("list_services", namespace, ListingError)
        for (ns, _), service in sorted(self.services.items()):
            if ns == namespace:
                return service
        return None

    def get_endpoint(self, namespace, service, endpoint):
        self._record("get_endpoint", endpoint)
        return self.endpoints.get((namespace, service, endpoint))

    def create_endpoint(self, namespace, service, endpoint, address, port, metadata):
        self._record("create_endpoint", endpoint)
        self.add_endpoint(namespace, service, endpoint, with_owner(metadata), address, port)
        return self.endpoints[(namespace, service, endpoint)]

    def update_endpoint_metadata(self, endpoint, metadata):
        parts = endpoint.name.split("/")
        key = (parts[5], parts[7], parts[9])
        self._record("update_endpoint", key[2])
        self.add_endpoint(
            *key, with_owner(metadata), endpoint.address, endpoint.port
        )
        return self.endpoints[key]

    def delete_endpoint(self, name):
        parts = name.split("/")
        self._record("delete_endpoint", parts[9])
        self.endpoints.pop((parts[5], parts[7], parts[9]), None)

    def iter_endpoints(self, namespace, service):
        self._record("list_endpoints", service, ListingError)
        # Snapshot the keys so callers may mutate the registry while iterating
        for key in sorted(self.endpoints):
            if key[:2] == (namespace, service) and key in self.endpoints:
                yield self.endpoints[key]


@pytest.fixture(autouse=True)
def sd_location(monkeypatch):
    """Point resource paths at a fixed project and region."""
    monkeypatch.setenv("SD_PROJECT", "my-project")
    monkeypatch.setenv("SD_REGION", "us-west2")


@pytest.fixture
def registry() -> FakeServiceDirectoryClient:
    return FakeServiceDirectoryClient()
