"""CLI entry point using Typer."""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer

from truststore_tester.catalog import list_certificates
from truststore_tester.config import CONNECT_TIMEOUT, DEFAULT_CONTAINER_PASSWORDS
from truststore_tester.exceptions import TruststoreTesterError
from truststore_tester.models import FileTarget, LiveTarget, ScanOutcome, ScanProgress, ScanTarget, ValidationOutcome
from truststore_tester.reporter import (
    generate_certificate_list_report,
    generate_json_report,
    generate_scan_report,
    generate_validation_report,
    set_color_output,
)
from truststore_tester.scanner import scan_aliases
from truststore_tester.sources import load_truststore_source
from truststore_tester.truststore import Truststore
from truststore_tester.validation import validate_file, validate_live

app = typer.Typer(help="Check TLS servers and certificate files against a PKCS#12/JKS truststore")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_LOAD_ERROR = 1
EXIT_FAILED = 2

TruststoreOption = typer.Option(..., "--truststore", "-s", help="Truststore file (PKCS12/JKS, optionally .tar.gz) or http(s) URL")
PasswordOption = typer.Option("changeit", "--password", "-P", help="Truststore password")
AliasOption = typer.Option(None, "--alias", "-a", help="Trust only this alias")
PortOption = typer.Option(443, "--port", "-p", help="Port (default: 443)")
TimeoutOption = typer.Option(CONNECT_TIMEOUT, "--timeout", "-t", help="Connect and handshake timeout in seconds")
FilePasswordOption = typer.Option(None, "--file-password", help="PKCS#12 password of the certificate file")
FallbackPasswordOption = typer.Option(
    None,
    "--fallback-password",
    help="Password tried on certificate containers when --file-password is not given (repeatable, default: '' and 'changeit')",
)
JsonOption = typer.Option(False, "--json", "-j", help="JSON output")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Debug logging")
ColorOption = typer.Option(True, "--color/--no-color", help="Enable/disable colored output")


def _setup(verbose: bool, color: bool) -> None:
    set_color_output(color)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("truststore_tester").setLevel(logging.DEBUG)


def _load(truststore: str, password: str) -> Truststore:
    try:
        return load_truststore_source(truststore, password)
    except (TruststoreTesterError, OSError) as e:
        logger.error(f"Could not load truststore: {e}")
        raise typer.Exit(EXIT_LOAD_ERROR)


def _fallbacks(values: Optional[List[str]]) -> List[str]:
    return list(values) if values else list(DEFAULT_CONTAINER_PASSWORDS)


def _is_interactive() -> bool:
    return sys.stdin.isatty()


def _prompt_file_password(outcome: ValidationOutcome) -> Optional[str]:
    """Ask for a PKCS#12 password when the outcome requires one and stdin is a terminal."""
    if not outcome.password_required or not _is_interactive():
        return None
    return typer.prompt("PKCS#12 password", hide_input=True)


def _print_validation(target: str, outcome: ValidationOutcome, json_output: bool) -> None:
    print(generate_json_report(outcome) if json_output else generate_validation_report(target, outcome))
    raise typer.Exit(EXIT_OK if outcome.success else EXIT_FAILED)


def _run_scan(target: ScanTarget, store: Truststore, json_output: bool, **kwargs) -> ScanOutcome:
    total = len(store.certificate_aliases())
    if json_output or total == 0:
        return scan_aliases(target, store, **kwargs)

    with typer.progressbar(length=total, label=f"Scanning {total} aliases", file=sys.stderr) as bar:

        def on_progress(progress: ScanProgress) -> None:
            bar.label = f"{progress.current_alias} ({progress.valid_count_so_far} valid)"
            bar.update(1)

        return scan_aliases(target, store, progress=on_progress, **kwargs)


def _print_scan(target: str, outcome: ScanOutcome, json_output: bool) -> None:
    print(generate_json_report(outcome) if json_output else generate_scan_report(target, outcome))
    if outcome.error:
        raise typer.Exit(EXIT_FAILED)
    raise typer.Exit(EXIT_OK if outcome.valid_aliases else EXIT_FAILED)


@app.command("list")
def list_command(
    truststore: str = TruststoreOption,
    password: str = PasswordOption,
    json_output: bool = JsonOption,
    verbose: bool = VerboseOption,
    color: bool = ColorOption,
):
    """
    List truststore certificates, soonest-expiring first.
    """
    _setup(verbose, color)
    store = _load(truststore, password)
    records = list_certificates(store)
    if json_output:
        print(generate_json_report(records))
    else:
        print(generate_certificate_list_report(records, source=f"{truststore} ({store.store_type})"))


@app.command()
def check(
    host: str = typer.Argument(..., help="Hostname or IP address"),
    port: int = PortOption,
    truststore: str = TruststoreOption,
    password: str = PasswordOption,
    alias: Optional[str] = AliasOption,
    timeout: float = TimeoutOption,
    json_output: bool = JsonOption,
    verbose: bool = VerboseOption,
    color: bool = ColorOption,
):
    """
    Check whether a TLS server is trusted by the truststore (or one alias).
    """
    _setup(verbose, color)
    store = _load(truststore, password)
    outcome = validate_live(host, port, store, alias, connect_timeout=timeout, read_timeout=timeout)
    _print_validation(f"{host}:{port}", outcome, json_output)


@app.command("check-file")
def check_file(
    path: Path = typer.Argument(..., help="Certificate file (PEM, DER, PKCS#7, PKCS#12 or JKS)"),
    truststore: str = TruststoreOption,
    password: str = PasswordOption,
    alias: Optional[str] = AliasOption,
    file_password: Optional[str] = FilePasswordOption,
    fallback_password: Optional[List[str]] = FallbackPasswordOption,
    json_output: bool = JsonOption,
    verbose: bool = VerboseOption,
    color: bool = ColorOption,
):
    """
    Check whether the certificates of a file are trusted by the truststore.
    """
    _setup(verbose, color)
    store = _load(truststore, password)
    fallbacks = _fallbacks(fallback_password)
    outcome = validate_file(str(path), store, alias, file_password, fallback_passwords=fallbacks)

    prompted = _prompt_file_password(outcome)
    if prompted is not None:
        outcome = validate_file(str(path), store, alias, prompted, fallback_passwords=fallbacks)
    _print_validation(str(path), outcome, json_output)


@app.command()
def scan(
    host: str = typer.Argument(..., help="Hostname or IP address"),
    port: int = PortOption,
    truststore: str = TruststoreOption,
    password: str = PasswordOption,
    timeout: float = TimeoutOption,
    json_output: bool = JsonOption,
    verbose: bool = VerboseOption,
    color: bool = ColorOption,
):
    """
    Find the aliases that individually trust a TLS server.
    """
    _setup(verbose, color)
    store = _load(truststore, password)
    target = LiveTarget(host, port)
    outcome = _run_scan(target, store, json_output, connect_timeout=timeout, read_timeout=timeout)
    _print_scan(str(target), outcome, json_output)


@app.command("scan-file")
def scan_file(
    path: Path = typer.Argument(..., help="Certificate file (PEM, DER, PKCS#7, PKCS#12 or JKS)"),
    truststore: str = TruststoreOption,
    password: str = PasswordOption,
    file_password: Optional[str] = FilePasswordOption,
    fallback_password: Optional[List[str]] = FallbackPasswordOption,
    json_output: bool = JsonOption,
    verbose: bool = VerboseOption,
    color: bool = ColorOption,
):
    """
    Find the aliases that individually trust the certificates of a file.
    """
    _setup(verbose, color)
    store = _load(truststore, password)
    fallbacks = _fallbacks(fallback_password)

    if file_password is None:
        probe = validate_file(str(path), store, password=None, fallback_passwords=fallbacks)
        file_password = _prompt_file_password(probe)

    target = FileTarget(str(path), file_password)
    outcome = _run_scan(target, store, json_output, fallback_passwords=fallbacks)
    _print_scan(str(target), outcome, json_output)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
