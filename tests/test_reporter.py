"""Tests for report generation."""

import json
from datetime import datetime, timezone

import pytest

from truststore_tester.models import (
    CertificateRecord,
    CertificateStatus,
    ChainLink,
    ScanOutcome,
    ValidationOutcome,
)
from truststore_tester.reporter import (
    generate_certificate_list_report,
    generate_json_report,
    generate_scan_report,
    generate_validation_report,
    set_color_output,
)

NOT_AFTER = datetime(2030, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def no_color():
    set_color_output(False)
    yield
    set_color_output(True)


@pytest.fixture
def sample_outcome():
    """Create a successful validation outcome with a two-link chain."""
    return ValidationOutcome(
        True,
        "TLS validation succeeded using full truststore",
        [
            ChainLink("CN=example.com", "CN=Example CA", NOT_AFTER),
            ChainLink("CN=Example CA", "CN=Example Root", NOT_AFTER),
        ],
    )


@pytest.fixture
def sample_records():
    return [
        CertificateRecord(
            alias="old-root",
            subject="CN=Old Root",
            issuer="CN=Old Root",
            serial_number="1a2b",
            not_before=datetime(2010, 1, 1, tzinfo=timezone.utc),
            not_after=datetime(2020, 1, 1, tzinfo=timezone.utc),
            status=CertificateStatus.EXPIRED,
        ),
        CertificateRecord(
            alias="web",
            subject="CN=web.example.com",
            issuer="CN=Example CA",
            serial_number="ff",
            not_before=datetime(2024, 1, 1, tzinfo=timezone.utc),
            not_after=NOT_AFTER,
            status=CertificateStatus.VALID,
            alt_names=["DNS: web.example.com", "IP: 10.0.0.1"],
        ),
    ]


def test_generate_validation_report(sample_outcome):
    """Test text report generation."""
    report = generate_validation_report("example.com:443", sample_outcome)

    assert "Truststore Validation Report" in report
    assert "Target: example.com:443" in report
    assert "OK" in report
    assert "TLS validation succeeded using full truststore" in report
    assert "[0] Subject: CN=example.com" in report
    assert "[1] Subject: CN=Example CA" in report
    assert "2030-01-01 00:00:00 UTC" in report


def test_generate_validation_report_failure():
    """Test that a failure without chain has no chain section."""
    report = generate_validation_report("server.pem", ValidationOutcome(False, "Certificate file is not found: server.pem"))

    assert "FAIL" in report
    assert "Certificate Chain" not in report


def test_generate_json_report(sample_outcome):
    """Test JSON report generation."""
    data = json.loads(generate_json_report(sample_outcome))

    assert data["success"] is True
    assert data["password_required"] is False
    assert data["chain"][0]["subject"] == "CN=example.com"
    assert data["chain"][0]["not_after"] == "2030-01-01T00:00:00+00:00"


def test_generate_json_report_password_required():
    """Test the password flag in JSON output."""
    outcome = ValidationOutcome(False, "PKCS12_PASSWORD_REQUIRED: PKCS12 container is detected. Enter password and retry.")

    assert json.loads(generate_json_report(outcome))["password_required"] is True


def test_generate_certificate_list_report(sample_records):
    """Test the certificate listing."""
    report = generate_certificate_list_report(sample_records, source="store.p12 (PKCS12)")

    assert "Source: store.p12 (PKCS12)" in report
    assert "Certificates: 2" in report
    assert "old-root  [expired]" in report
    assert "web  [valid]" in report
    assert "Alternative Names: DNS: web.example.com, IP: 10.0.0.1" in report


def test_generate_certificate_list_json(sample_records):
    """Test JSON output for a list of records."""
    data = json.loads(generate_json_report(sample_records))

    assert [item["alias"] for item in data] == ["old-root", "web"]
    assert data[0]["status"] == "expired"


def test_generate_scan_report():
    """Test the scan report."""
    report = generate_scan_report(
        "example.com:443", ScanOutcome(valid_aliases=["root"], checked_count=3, failed_count=2)
    )

    assert "Checked: 3" in report
    assert "Valid: 1" in report
    assert "Failed: 2" in report
    assert "  - root" in report


def test_generate_scan_report_error():
    """Test a scan that ended with an error."""
    report = generate_scan_report("a.pem", ScanOutcome(error="boom"))

    assert "Error: boom" in report
    assert "No alias trusts the target." in report


def test_colored_output(sample_outcome):
    """Test that color codes are emitted when enabled."""
    set_color_output(True)

    report = generate_validation_report("example.com:443", sample_outcome)

    assert "\x1b[" in report
