"""Truststore listing for display."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from truststore_tester.certificate import format_alt_names, format_name
from truststore_tester.config import EXPIRING_SOON_DAYS
from truststore_tester.models import CertificateRecord, CertificateStatus
from truststore_tester.truststore import Truststore

logger = logging.getLogger(__name__)


def resolve_status(not_after: datetime, now: Optional[datetime] = None) -> CertificateStatus:
    """Classify a certificate by its NotAfter date."""
    now = now or datetime.now(timezone.utc)
    if not_after < now:
        return CertificateStatus.EXPIRED
    if (not_after - now).days <= EXPIRING_SOON_DAYS:
        return CertificateStatus.EXPIRING_SOON
    return CertificateStatus.VALID


def list_certificates(truststore: Truststore, now: Optional[datetime] = None) -> List[CertificateRecord]:
    """
    List every certificate-bearing entry, soonest-expiring first.

    Args:
        truststore: Loaded truststore
        now: Reference time for the status (defaults to the current UTC time)

    Returns:
        Records sorted by NotAfter
    """
    now = now or datetime.now(timezone.utc)
    records: List[CertificateRecord] = []

    for entry in truststore:
        cert = entry.certificate
        if cert is None:
            continue
        try:
            alt_names = format_alt_names(cert)
        except Exception as e:
            logger.warning(f"Could not parse subject alternative names of '{entry.alias}': {e}")
            alt_names = []
        not_after = cert.not_valid_after_utc
        records.append(
            CertificateRecord(
                alias=entry.alias,
                subject=format_name(cert.subject),
                issuer=format_name(cert.issuer),
                serial_number=format(cert.serial_number, "x"),
                not_before=cert.not_valid_before_utc,
                not_after=not_after,
                status=resolve_status(not_after, now),
                alt_names=alt_names,
            )
        )

    records.sort(key=lambda record: record.not_after)
    return records
