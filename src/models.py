"""Domain models for the CNWAN operator.

This module defines typed data structures for the desired state handed to
the sync engine, the per-endpoint decisions it takes and the settings the
operator runs with.
"""

import os
from dataclasses import dataclass, field
from enum import Enum


# =============================================================================
# Enums for constrained values
# =============================================================================


class EndpointAction(Enum):
    """What to do with a remote endpoint owned by the operator."""

    NONE = "none"
    UPDATE = "update"
    DELETE = "delete"


class ListPolicy(Enum):
    """How namespaces are selected for synchronization."""

    ALLOWLIST = "allowlist"
    BLOCKLIST = "blocklist"


# =============================================================================
# Dataclasses for desired state
# =============================================================================


@dataclass(frozen=True)
class EndpointSnapshot:
    """Desired state of a single endpoint."""

    name: str
    address: str
    port: int
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ServiceSnapshot:
    """Desired state of a service and its endpoints at one point in time."""

    name: str
    namespace: str
    metadata: dict[str, str] = field(default_factory=dict)
    endpoints: dict[str, EndpointSnapshot] = field(default_factory=dict)

    @classmethod
    def from_endpoints(
        cls,
        name: str,
        namespace: str,
        metadata: dict[str, str],
        endpoints: list[EndpointSnapshot],
    ) -> "ServiceSnapshot":
        """Create a snapshot keyed by endpoint name."""
        return cls(
            name=name,
            namespace=namespace,
            metadata=dict(metadata),
            endpoints={endpoint.name: endpoint for endpoint in endpoints},
        )


@dataclass
class EndpointSyncResult:
    """Outcome of one pass over a service's endpoints.

    Failures are collected here and logged; they never fail the pass.
    """

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        """Convert to dict for logging."""
        return {
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "failed": self.failed,
        }


# =============================================================================
# Settings
# =============================================================================


@dataclass(frozen=True)
class OperatorSettings:
    """Operator configuration loaded from the environment."""

    project: str
    region: str
    credentials_path: str | None = None
    allowed_annotations: tuple[str, ...] = ()
    namespace_list_policy: ListPolicy = ListPolicy.ALLOWLIST
    api_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "OperatorSettings":
        """Create from environment variables.

        Raises:
            ConfigurationError: if project or region are missing, or a value
                cannot be parsed.
        """
        env = os.environ if environ is None else environ

        project = env.get("SD_PROJECT", "").strip()
        region = env.get("SD_REGION", "").strip()
        if not project:
            raise ConfigurationError("SD_PROJECT is required")
        if not region:
            raise ConfigurationError("SD_REGION is required")

        policy_str = env.get("NAMESPACE_LIST_POLICY", ListPolicy.ALLOWLIST.value)
        try:
            policy = ListPolicy(policy_str.strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"invalid NAMESPACE_LIST_POLICY: {policy_str!r}"
            ) from None

        timeout_str = env.get("SD_API_TIMEOUT", "30")
        try:
            timeout = float(timeout_str)
        except ValueError:
            raise ConfigurationError(
                f"invalid SD_API_TIMEOUT: {timeout_str!r}"
            ) from None
        if timeout <= 0:
            timeout = 30.0

        annotations = tuple(
            a.strip() for a in env.get("SERVICE_ANNOTATIONS", "").split(",") if a.strip()
        )

        return cls(
            project=project,
            region=region,
            credentials_path=(
                env.get("SD_CREDENTIALS_FILE")
                or env.get("GOOGLE_APPLICATION_CREDENTIALS")
                or None
            ),
            allowed_annotations=annotations,
            namespace_list_policy=policy,
            api_timeout=timeout,
        )


# =============================================================================
# Exceptions
# =============================================================================


class OperatorError(Exception):
    """Base exception for operator errors."""

    pass


class ConfigurationError(OperatorError):
    """Invalid or missing configuration."""

    pass


class ServiceDirectoryAPIError(OperatorError):
    """Error communicating with the Service Directory API."""

    pass


class ListingError(ServiceDirectoryAPIError):
    """A paginated listing failed before reaching its end."""

    pass
