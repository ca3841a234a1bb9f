"""Integration tests for the command line interface."""

import json
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from typer.testing import CliRunner

from conftest import make_certificate, pkcs12_truststore_bytes, write_pem
from truststore_tester.cli import EXIT_FAILED, EXIT_LOAD_ERROR, EXIT_OK, app
from truststore_tester.models import ValidationOutcome
from truststore_tester.validation import validate_file

runner = CliRunner()


@pytest.fixture
def truststore_file(tmp_path, pki, unrelated_root):
    path = tmp_path / "truststore.p12"
    path.write_bytes(pkcs12_truststore_bytes({"root": pki.root, "unrelated": unrelated_root}))
    return path


def test_cli_list(truststore_file):
    """Test listing the truststore."""
    result = runner.invoke(app, ["list", "-s", str(truststore_file), "--no-color"])

    assert result.exit_code == EXIT_OK
    assert "Truststore Certificates" in result.output
    assert "CN=Test Root CA" in result.output
    assert "CN=Unrelated Root CA" in result.output


def test_cli_list_json(truststore_file):
    """Test JSON listing."""
    result = runner.invoke(app, ["list", "-s", str(truststore_file), "--json"])

    assert result.exit_code == EXIT_OK
    data = json.loads(result.stdout[result.stdout.index("[") :])
    assert sorted(item["alias"] for item in data) == ["root", "unrelated"]


def test_cli_check_file_trusted(tmp_path, pki, truststore_file):
    """Test a trusted certificate file."""
    cert_file = write_pem(tmp_path / "server.pem", [pki.leaf, pki.intermediate])

    result = runner.invoke(app, ["check-file", str(cert_file), "-s", str(truststore_file), "--no-color"])

    assert result.exit_code == EXIT_OK
    assert "Certificate is trusted using full truststore" in result.output


def test_cli_check_file_not_trusted(tmp_path, truststore_file):
    """Test an untrusted certificate file."""
    stranger, _ = make_certificate("stranger.example.com")
    cert_file = write_pem(tmp_path / "stranger.pem", [stranger])

    result = runner.invoke(app, ["check-file", str(cert_file), "-s", str(truststore_file), "--no-color"])

    assert result.exit_code == EXIT_FAILED
    assert "is not trusted using full truststore" in result.output


def test_cli_check_file_alias(tmp_path, pki, truststore_file):
    """Test alias restriction from the command line."""
    cert_file = write_pem(tmp_path / "server.pem", [pki.leaf, pki.intermediate])

    result = runner.invoke(
        app, ["check-file", str(cert_file), "-s", str(truststore_file), "-a", "unrelated", "--no-color"]
    )

    assert result.exit_code == EXIT_FAILED
    assert "alias=unrelated" in result.output


def test_cli_bad_truststore_password(tmp_path, pki, truststore_file):
    """Test that an unreadable truststore exits with the load error code."""
    cert_file = write_pem(tmp_path / "server.pem", [pki.leaf])

    result = runner.invoke(app, ["check-file", str(cert_file), "-s", str(truststore_file), "-P", "wrong"])

    assert result.exit_code == EXIT_LOAD_ERROR


@patch("truststore_tester.cli.validate_live")
def test_cli_check_live(mock_validate, truststore_file):
    """Test the live check command wiring."""
    mock_validate.return_value = ValidationOutcome(True, "TLS validation succeeded using alias=root")

    result = runner.invoke(
        app, ["check", "example.com", "-p", "8443", "-s", str(truststore_file), "-a", "root", "-t", "2", "--no-color"]
    )

    assert result.exit_code == EXIT_OK
    assert "Target: example.com:8443" in result.output
    args, kwargs = mock_validate.call_args
    assert args[0] == "example.com"
    assert args[1] == 8443
    assert args[3] == "root"
    assert kwargs["connect_timeout"] == 2.0


def test_cli_scan_file(tmp_path, pki, truststore_file):
    """Test scanning every alias against a certificate file."""
    cert_file = write_pem(tmp_path / "server.pem", [pki.leaf, pki.intermediate])

    result = runner.invoke(app, ["scan-file", str(cert_file), "-s", str(truststore_file), "--no-color"])

    assert result.exit_code == EXIT_OK
    assert "Alias Scan Report" in result.output
    assert "  - root" in result.output
    assert "Failed: 1" in result.output


def test_cli_scan_file_json(tmp_path, truststore_file):
    """Test a scan where no alias trusts the file."""
    stranger, _ = make_certificate("stranger.example.com")
    cert_file = write_pem(tmp_path / "stranger.pem", [stranger])

    result = runner.invoke(app, ["scan-file", str(cert_file), "-s", str(truststore_file), "--json"])

    assert result.exit_code == EXIT_FAILED
    data = json.loads(result.stdout[result.stdout.index("{") :])
    assert data["valid_aliases"] == []
    assert data["checked_count"] == 2


@pytest.fixture
def locked_bundle(tmp_path, pki):
    """PKCS#12 file protected with a password outside the fallback list."""
    path = tmp_path / "bundle.p12"
    path.write_bytes(
        pkcs12.serialize_key_and_certificates(
            b"server",
            pki.leaf_key,
            pki.leaf,
            [pki.intermediate],
            serialization.BestAvailableEncryption(b"secret123"),
        )
    )
    return path


@patch("truststore_tester.cli._is_interactive", return_value=True)
def test_cli_check_file_prompts_for_password(mock_interactive, locked_bundle, truststore_file):
    """Test that a terminal user is asked for the PKCS#12 password and the check runs once more."""
    with patch("truststore_tester.cli.validate_file", wraps=validate_file) as mock_validate:
        result = runner.invoke(
            app, ["check-file", str(locked_bundle), "-s", str(truststore_file), "--no-color"], input="secret123\n"
        )

    assert result.exit_code == EXIT_OK
    assert "PKCS#12 password" in result.output
    assert "Certificate is trusted using full truststore" in result.output
    assert mock_validate.call_count == 2
    assert mock_validate.call_args.args[3] == "secret123"


@patch("truststore_tester.cli._is_interactive", return_value=False)
def test_cli_check_file_no_prompt_without_terminal(mock_interactive, locked_bundle, truststore_file):
    """Test that without a terminal the password requirement is reported as a failure."""
    with patch("truststore_tester.cli.validate_file", wraps=validate_file) as mock_validate:
        result = runner.invoke(app, ["check-file", str(locked_bundle), "-s", str(truststore_file), "--no-color"])

    assert result.exit_code == EXIT_FAILED
    assert "PKCS#12 password" not in result.output
    assert "PKCS12_PASSWORD_REQUIRED:" in result.output
    assert mock_validate.call_count == 1


@patch("truststore_tester.cli._is_interactive", return_value=True)
def test_cli_scan_file_prompts_for_password(mock_interactive, locked_bundle, truststore_file):
    """Test that the prompted password is used for every alias of the scan."""
    result = runner.invoke(
        app, ["scan-file", str(locked_bundle), "-s", str(truststore_file), "--no-color"], input="secret123\n"
    )

    assert result.exit_code == EXIT_OK
    assert "PKCS#12 password" in result.output
    assert "  - root" in result.output


@patch("truststore_tester.cli._is_interactive", return_value=False)
def test_cli_scan_file_no_prompt_without_terminal(mock_interactive, locked_bundle, truststore_file):
    """Test that a locked file without a terminal finds no trusting alias."""
    result = runner.invoke(app, ["scan-file", str(locked_bundle), "-s", str(truststore_file), "--no-color"])

    assert result.exit_code == EXIT_FAILED
    assert "PKCS#12 password" not in result.output
    assert "No alias trusts the target." in result.output
