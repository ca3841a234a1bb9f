"""Default settings shared by the library and the CLI."""

from typing import Tuple

# Network
CONNECT_TIMEOUT = 5.0  # seconds
READ_TIMEOUT = 5.0  # seconds

# Store downloads
DOWNLOAD_CONNECT_TIMEOUT = 10.0
DOWNLOAD_TIMEOUT = 30.0

# Certificate catalog
EXPIRING_SOON_DAYS = 30

# Container formats tried by the store loader, in order
SUPPORTED_STORE_TYPES: Tuple[str, ...] = ("PKCS12", "JKS")

# Passwords tried on certificate containers when the caller supplies none.
# Legacy Java defaults, not a hardening measure.
DEFAULT_CONTAINER_PASSWORDS: Tuple[str, ...] = ("", "changeit")

PASSWORD_REQUIRED_PREFIX = "PKCS12_PASSWORD_REQUIRED:"
