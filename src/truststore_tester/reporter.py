"""Report generation (text and JSON)."""

import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from io import StringIO
from typing import Any, List, Optional, Sequence

from rich.console import Console

from truststore_tester.models import (
    CertificateRecord,
    CertificateStatus,
    ChainLink,
    ScanOutcome,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)

# Global flag for colored output
_use_color = True

_STATUS_STYLES = {
    CertificateStatus.VALID: "green",
    CertificateStatus.EXPIRING_SOON: "yellow",
    CertificateStatus.EXPIRED: "red",
}


def set_color_output(enabled: bool) -> None:
    """Enable or disable colored output."""
    global _use_color
    _use_color = enabled


def _colorize(text: str, style: str) -> str:
    if not _use_color:
        return text
    output = StringIO()
    console = Console(file=output, force_terminal=True, width=1000)
    console.print(f"[{style}]{text}[/{style}]", end="", markup=True, highlight=False)
    return output.getvalue()


def _format_result(success: bool) -> str:
    return _colorize("OK ✓", "green") if success else _colorize("FAIL ✗", "red")


def _format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


def _format_chain(chain: Sequence[ChainLink], lines: List[str]) -> None:
    if not chain:
        return
    lines.append("Certificate Chain:")
    for index, link in enumerate(chain):
        lines.append(f"  [{index}] Subject: {link.subject}")
        lines.append(f"      Issuer: {link.issuer}")
        lines.append(f"      Not After: {_format_date(link.not_after)}")


def generate_certificate_list_report(records: Sequence[CertificateRecord], source: Optional[str] = None) -> str:
    """
    Generate a human-readable listing of truststore certificates.

    Args:
        records: Records as returned by list_certificates
        source: Truststore description for the header
    """
    lines: List[str] = []
    lines.append("=" * 70)
    lines.append("Truststore Certificates")
    lines.append("=" * 70)
    if source:
        lines.append(f"Source: {source}")
    lines.append(f"Certificates: {len(records)}")
    lines.append("")

    for record in records:
        status = _colorize(record.status.value, _STATUS_STYLES[record.status])
        lines.append(f"{record.alias}  [{status}]")
        lines.append(f"  Subject: {record.subject}")
        lines.append(f"  Issuer: {record.issuer}")
        lines.append(f"  Serial Number: {record.serial_number}")
        lines.append(f"  Valid: {_format_date(record.not_before)} -> {_format_date(record.not_after)}")
        if record.alt_names:
            lines.append(f"  Alternative Names: {', '.join(record.alt_names)}")
        lines.append("")

    lines.append("=" * 70)
    return "\n".join(lines)


def generate_validation_report(target: str, outcome: ValidationOutcome) -> str:
    """Generate a human-readable report for a single validation."""
    lines: List[str] = []
    lines.append("=" * 70)
    lines.append("Truststore Validation Report")
    lines.append("=" * 70)
    lines.append(f"Target: {target}")
    lines.append(f"Result: {_format_result(outcome.success)}")
    lines.append(f"  {outcome.message}")
    lines.append("")
    _format_chain(outcome.chain, lines)
    lines.append("=" * 70)
    return "\n".join(lines)


def generate_scan_report(target: str, outcome: ScanOutcome) -> str:
    """Generate a human-readable report for an alias scan."""
    lines: List[str] = []
    lines.append("=" * 70)
    lines.append("Alias Scan Report")
    lines.append("=" * 70)
    lines.append(f"Target: {target}")
    lines.append(f"Checked: {outcome.checked_count}")
    lines.append(f"Valid: {len(outcome.valid_aliases)}")
    lines.append(f"Failed: {outcome.failed_count}")
    if outcome.error:
        lines.append(f"Error: {_colorize(outcome.error, 'red')}")
    lines.append("")
    if outcome.valid_aliases:
        lines.append("Trusting aliases:")
        for alias in outcome.valid_aliases:
            lines.append(f"  - {alias}")
    else:
        lines.append("No alias trusts the target.")
    lines.append("=" * 70)
    return "\n".join(lines)


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Type {type(obj)} not serializable")


def generate_json_report(result: Any) -> str:
    """
    Generate a JSON report for a result dataclass or a list of them.

    Returns:
        JSON string
    """
    if isinstance(result, (list, tuple)):
        data = [asdict(item) if is_dataclass(item) else item for item in result]
    else:
        data = asdict(result)
        if isinstance(result, ValidationOutcome):
            data["password_required"] = result.password_required
    return json.dumps(data, indent=2, default=_serialize)
