"""Constants used across the operator."""

# Reserved metadata/label pair marking registry resources managed by the operator
OWNER_KEY = "owner"
OWNER_VALUE = "cnwan-operator"

# Only metadata is ever written on updates
METADATA_UPDATE_MASK = ["metadata"]

# Namespace labels consulted by the namespace list policy
ALLOWED_NAMESPACE_LABEL = "operator.cnwan.io/allowed"
BLOCKED_NAMESPACE_LABEL = "operator.cnwan.io/blocked"

# Endpoint names are "<service>-<first N hex chars of sha256(ip:port)>"
ENDPOINT_HASH_CHARS = 10
