"""Build desired-state snapshots from Kubernetes Service objects."""

import hashlib
import logging
import socket
from collections.abc import Iterable, Mapping
from typing import Any

from constants import ENDPOINT_HASH_CHARS
from models import EndpointSnapshot, ServiceSnapshot

logger = logging.getLogger(__name__)


def filter_annotations(
    annotations: Mapping[str, str] | None, allowed: Iterable[str]
) -> dict[str, str]:
    """Keep only the annotations matching the allow-list.

    Allow-list entries can be exact keys, "prefix/*", "*/name" or "*/*".

    Example: {'cnwan.io/traffic': 'video', 'other': 'x'} with ['cnwan.io/*']
        -> {'cnwan.io/traffic': 'video'}
    """
    annotations = annotations or {}
    allowed = set(allowed)

    if "*/*" in allowed:
        return dict(annotations)

    filtered: dict[str, str] = {}
    for key, value in annotations.items():
        if key in allowed:
            filtered[key] = value
            continue

        parts = key.split("/")
        if len(parts) != 2:
            # Not in prefix/name format
            continue

        prefix, name = parts
        if f"{prefix}/*" in allowed or f"*/{name}" in allowed:
            filtered[key] = value

    return filtered


def resolve_hostname(hostname: str) -> list[str]:
    """Resolve a load balancer hostname to its addresses."""
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return sorted({info[4][0] for info in infos})


def get_service_ips(service: Mapping[str, Any]) -> list[str]:
    """Collect the addresses a Service is reachable at.

    Includes external IPs and load balancer ingress IPs, plus the addresses
    of ingress hostnames.

    Raises:
        OSError: if an ingress hostname cannot be resolved
    """
    spec = service.get("spec") or {}
    status = service.get("status") or {}
    ingresses = (status.get("loadBalancer") or {}).get("ingress") or []

    ips: set[str] = set(spec.get("externalIPs") or [])
    for ingress in ingresses:
        if ingress.get("ip"):
            ips.add(ingress["ip"])
        if ingress.get("hostname"):
            ips.update(resolve_hostname(ingress["hostname"]))

    return sorted(ips)


def make_endpoint_name(service_name: str, ip: str, port: int) -> str:
    """Generate a stable endpoint name for an address/port pair.

    Example: ('web', '10.0.0.1', 80) -> 'web-<10 hex chars>'
    """
    digest = hashlib.sha256(f"{ip}:{port}".encode()).hexdigest()
    return f"{service_name}-{digest[:ENDPOINT_HASH_CHARS]}"


def build_snapshot(
    service: Mapping[str, Any], allowed_annotations: Iterable[str]
) -> ServiceSnapshot:
    """Build the desired state of a Kubernetes Service.

    A Service that is being deleted, or that is not a LoadBalancer, has
    no endpoints.

    Args:
        service: The Service object, as received from the Kubernetes API
        allowed_annotations: Annotation allow-list

    Raises:
        OSError: if an ingress hostname cannot be resolved
    """
    meta = service.get("metadata") or {}
    spec = service.get("spec") or {}
    name = meta.get("name", "")
    namespace = meta.get("namespace", "")
    metadata = filter_annotations(meta.get("annotations"), allowed_annotations)

    if meta.get("deletionTimestamp"):
        return ServiceSnapshot(name=name, namespace=namespace, metadata=metadata)

    if spec.get("type") != "LoadBalancer":
        logger.debug(f"Service {namespace}/{name} is not a LoadBalancer")
        return ServiceSnapshot(name=name, namespace=namespace, metadata=metadata)

    ips = get_service_ips(service)
    endpoints = [
        EndpointSnapshot(
            name=make_endpoint_name(name, ip, port["port"]),
            address=ip,
            port=port["port"],
        )
        for port in spec.get("ports") or []
        for ip in ips
    ]

    return ServiceSnapshot.from_endpoints(name, namespace, metadata, endpoints)
