"""Data models for truststore validation results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from truststore_tester.config import PASSWORD_REQUIRED_PREFIX


class CertificateStatus(str, Enum):
    """Expiry status of a trust anchor."""

    VALID = "valid"
    EXPIRING_SOON = "expiringSoon"
    EXPIRED = "expired"


@dataclass
class CertificateRecord:
    """Display record for a single truststore entry."""

    alias: str
    subject: str
    issuer: str
    serial_number: str  # hex
    not_before: datetime
    not_after: datetime
    status: CertificateStatus
    alt_names: List[str] = field(default_factory=list)  # "<type>: <value>"


@dataclass(frozen=True)
class ChainLink:
    """Minimal projection of a chain certificate."""

    subject: str
    issuer: str
    not_after: datetime


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a single live or file validation attempt."""

    success: bool
    message: str
    chain: List[ChainLink] = field(default_factory=list)

    @property
    def password_required(self) -> bool:
        """True if a PKCS#12 container needs a password before it can be checked."""
        return not self.success and self.message.startswith(PASSWORD_REQUIRED_PREFIX)


@dataclass
class ScanOutcome:
    """Result of scanning every alias of a truststore."""

    valid_aliases: List[str] = field(default_factory=list)
    checked_count: int = 0
    failed_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class ScanProgress:
    """Progress notification sent after each checked alias."""

    checked_count: int
    total_count: int
    current_alias: str
    valid_count_so_far: int


@dataclass(frozen=True)
class LiveTarget:
    """A TLS endpoint to validate."""

    host: str
    port: int = 443

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class FileTarget:
    """A certificate file to validate, with an optional PKCS#12 password."""

    path: str
    password: Optional[str] = None

    def __str__(self) -> str:
        return self.path


ScanTarget = Union[LiveTarget, FileTarget]
