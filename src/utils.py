"""Utility functions for the CNWAN operator."""

import os
from collections.abc import Mapping

from google.cloud.servicedirectory_v1beta1 import Endpoint, Namespace, Service

from constants import (
    ALLOWED_NAMESPACE_LABEL,
    BLOCKED_NAMESPACE_LABEL,
    OWNER_KEY,
    OWNER_VALUE,
)
from models import ListPolicy


def get_resource_path(
    namespace: str | None = None,
    service: str | None = None,
    endpoint: str | None = None,
) -> str:
    """Build the Service Directory resource name for the given hierarchy.

    Project and region are read from the environment on every call, so a
    configuration change is picked up by the next call.

    Example: get_resource_path("ns", "serv") ->
        'projects/<project>/locations/<region>/namespaces/ns/services/serv'
    """
    if endpoint and not service:
        raise ValueError("an endpoint path requires a service")
    if service and not namespace:
        raise ValueError("a service path requires a namespace")

    project = os.environ.get("SD_PROJECT", "")
    region = os.environ.get("SD_REGION", "")
    path = f"projects/{project}/locations/{region}"

    if namespace:
        path = f"{path}/namespaces/{namespace}"
    if service:
        path = f"{path}/services/{service}"
    if endpoint:
        path = f"{path}/endpoints/{endpoint}"

    return path


def get_leaf_name(path: str) -> str:
    """Return the last segment of a resource name."""
    return path.rsplit("/", 1)[-1]


def is_owned(metadata: Mapping[str, str] | None) -> bool:
    """Check if metadata (or labels) carry the operator's ownership marker."""
    if not metadata:
        return False
    return metadata.get(OWNER_KEY) == OWNER_VALUE


def ownership_tag(resource: Namespace | Service | Endpoint) -> bool:
    """Check if a registry resource is owned by the operator.

    Namespaces carry the marker in their labels, services and endpoints in
    their metadata.
    """
    if isinstance(resource, Namespace):
        return is_owned(resource.labels)
    return is_owned(resource.metadata)


def _without_owner(metadata: Mapping[str, str] | None) -> dict[str, str]:
    return {
        key: value
        for key, value in (metadata or {}).items()
        if not (key == OWNER_KEY and value == OWNER_VALUE)
    }


def metadata_equivalent(
    a: Mapping[str, str] | None, b: Mapping[str, str] | None
) -> bool:
    """Compare two metadata maps, ignoring the ownership marker.

    Neither input is modified. An owner key with any other value is
    compared like every other key.
    """
    return _without_owner(a) == _without_owner(b)


def with_owner(metadata: Mapping[str, str] | None) -> dict[str, str]:
    """Return a copy of metadata with the ownership marker set."""
    tagged = dict(metadata or {})
    tagged[OWNER_KEY] = OWNER_VALUE
    return tagged


def is_namespace_allowed(
    labels: Mapping[str, str] | None, policy: ListPolicy
) -> bool:
    """Check if services in a Kubernetes namespace should be synchronized.

    With an allowlist the namespace must carry the allowed label, with a
    blocklist it must not carry the blocked label. Label values are ignored.
    """
    labels = labels or {}
    if policy is ListPolicy.ALLOWLIST:
        return ALLOWED_NAMESPACE_LABEL in labels
    return BLOCKED_NAMESPACE_LABEL not in labels
