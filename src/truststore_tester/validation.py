"""Live TLS and offline certificate-file validation against a truststore."""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from cryptography import x509

from truststore_tester.certificate import format_name, load_certificates, to_chain_links, unique_certificates
from truststore_tester.chain import build_chain
from truststore_tester.config import (
    CONNECT_TIMEOUT,
    DEFAULT_CONTAINER_PASSWORDS,
    PASSWORD_REQUIRED_PREFIX,
    READ_TIMEOUT,
)
from truststore_tester.exceptions import (
    CertificatePathError,
    ConnectionTimeoutError,
    DNSResolutionError,
    InvalidInputError,
    NetworkError,
    NotFoundError,
    PasswordRequiredError,
    TLSHandshakeError,
    TrustRejectedError,
    UnsupportedFormatError,
)
from truststore_tester.models import ValidationOutcome
from truststore_tester.network import connect_tls, create_trust_context
from truststore_tester.trust import TrustManager, evaluate_chain
from truststore_tester.truststore import Truststore, open_jks, open_pkcs12

logger = logging.getLogger(__name__)

_PKCS12_SUFFIXES = (".p12", ".pfx")
_PKCS12_PASSWORD_ERROR_MARKERS = (
    "invalid password",
    "incorrect password",
    "password was incorrect",
    "mac invalid",
    "mac verify",
    "failed to decrypt",
    "decryption failed",
)


def _safe_message(error: Optional[BaseException]) -> str:
    if error is None:
        return "unknown error"
    message = str(error).strip()
    return message or type(error).__name__


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _trust_mode(alias: Optional[str]) -> str:
    return "full truststore" if _is_blank(alias) else f"alias={alias}"


def resolve_trust_source(truststore: Truststore, alias: Optional[str] = None) -> Truststore:
    """
    Return the truststore to validate against.

    Raises:
        NotFoundError: If ``alias`` is given but absent or has no certificate
    """
    if _is_blank(alias):
        return truststore
    return truststore.single_alias(alias)


def validate_live(
    host: str,
    port: int,
    truststore: Truststore,
    alias: Optional[str] = None,
    connect_timeout: float = CONNECT_TIMEOUT,
    read_timeout: float = READ_TIMEOUT,
) -> ValidationOutcome:
    """
    Validate a TLS server against the truststore (or one of its aliases).

    Never raises: every failure is reported in the outcome message, with an
    empty chain.

    Args:
        host: Hostname or IP address
        port: TCP port (1-65535)
        truststore: Trust anchors
        alias: Restrict trust to this alias' certificate
        connect_timeout: TCP connect timeout in seconds
        read_timeout: Handshake timeout in seconds

    Returns:
        ValidationOutcome with the peer's presented chain on success
    """
    try:
        if _is_blank(host):
            raise InvalidInputError("Host is required")
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise InvalidInputError(f"Port must be between 1 and 65535 (got {port})")
        host = host.strip()

        effective_store = resolve_trust_source(truststore, alias)
        context = create_trust_context(effective_store)
        chain_der = connect_tls(host, port, context, connect_timeout=connect_timeout, read_timeout=read_timeout)
        chain = to_chain_links(x509.load_der_x509_certificate(der) for der in chain_der)
        mode = _trust_mode(alias)
        logger.info(f"TLS validation of {host}:{port} succeeded using {mode}")
        return ValidationOutcome(True, f"TLS validation succeeded using {mode}", chain)
    except DNSResolutionError as e:
        logger.debug(f"DNS failure: {e}")
        return ValidationOutcome(
            False, f"TLS validation failed: host is unreachable or DNS name is invalid ({host})"
        )
    except ConnectionTimeoutError as e:
        logger.debug(f"Timeout: {e}")
        return ValidationOutcome(
            False,
            f"TLS validation failed: network timeout while connecting or during TLS handshake to {host}:{port}",
        )
    except TrustRejectedError as e:
        return ValidationOutcome(
            False,
            f"TLS validation failed: connected to server, but certificate validation failed ({_safe_message(e)})",
        )
    except TLSHandshakeError as e:
        return ValidationOutcome(
            False,
            f"TLS validation failed: connected to server, but TLS negotiation failed ({_safe_message(e)})",
        )
    except NetworkError as e:
        logger.debug(f"Connection failure: {e}")
        return ValidationOutcome(
            False, f"TLS validation failed: unable to reach {host}:{port} (connection refused/unreachable)"
        )
    except (InvalidInputError, NotFoundError) as e:
        return ValidationOutcome(False, f"TLS validation failed: {_safe_message(e)}")
    except Exception as e:
        logger.debug(f"Unexpected error validating {host}:{port}", exc_info=True)
        return ValidationOutcome(False, f"TLS validation failed: unexpected error ({_safe_message(e)})")


def _looks_like_pkcs12(path: Path, error: Optional[Exception]) -> bool:
    if path.name.lower().endswith(_PKCS12_SUFFIXES):
        return True
    message = _safe_message(error).lower() if error is not None else ""
    return any(marker in message for marker in _PKCS12_PASSWORD_ERROR_MARKERS)


def _read_pkcs12(
    data: bytes,
    path: Path,
    password: Optional[str],
    fallback_passwords: Sequence[str],
) -> List[x509.Certificate]:
    candidates = [password] if password is not None else list(fallback_passwords)

    last_error: Optional[Exception] = None
    for candidate in candidates:
        try:
            return open_pkcs12(data, candidate).all_certificates()
        except Exception as e:
            last_error = e

    if _looks_like_pkcs12(path, last_error):
        if password is None:
            raise PasswordRequiredError(
                f"{PASSWORD_REQUIRED_PREFIX} PKCS12 container is detected. Enter password and retry.",
                formats_tried=["PKCS12"],
            )
        raise InvalidInputError("PKCS12 container is detected, but password is incorrect or file is corrupted.")
    logger.debug(f"{path} is not a PKCS12 container: {_safe_message(last_error)}")
    return []


def _read_jks(data: bytes, path: Path, fallback_passwords: Sequence[str]) -> List[x509.Certificate]:
    for candidate in fallback_passwords:
        try:
            return open_jks(data, candidate).all_certificates()
        except Exception as e:
            logger.debug(f"{path} is not readable as JKS with a fallback password: {_safe_message(e)}")
    return []


def parse_certificate_file(
    path: Union[str, Path],
    password: Optional[str] = None,
    fallback_passwords: Sequence[str] = DEFAULT_CONTAINER_PASSWORDS,
) -> List[x509.Certificate]:
    """
    Read every X.509 certificate from a certificate file.

    Formats are tried in a fixed order: a certificate stream (PEM, DER,
    PKCS#7), PKCS#12 (the given password, else the fallback passwords), JKS
    (fallback passwords). The first format that yields certificates wins.

    Raises:
        PasswordRequiredError: If the file looks like PKCS#12 and no password was given
        InvalidInputError: If a PKCS#12 password was given but does not open the file
    """
    path = Path(path)
    data = path.read_bytes()

    attempts: List[Tuple[str, Callable[[], List[x509.Certificate]]]] = [
        ("X.509", lambda: load_certificates(data)),
        ("PKCS12", lambda: _read_pkcs12(data, path, password, fallback_passwords)),
        ("JKS", lambda: _read_jks(data, path, fallback_passwords)),
    ]
    for name, attempt in attempts:
        certificates = attempt()
        if certificates:
            logger.debug(f"Parsed {len(certificates)} certificate(s) from {path} as {name}")
            return unique_certificates(certificates)
    return []


def validate_file(
    path: Optional[Union[str, Path]],
    truststore: Truststore,
    alias: Optional[str] = None,
    password: Optional[str] = None,
    fallback_passwords: Sequence[str] = DEFAULT_CONTAINER_PASSWORDS,
) -> ValidationOutcome:
    """
    Validate the certificates of a file against the truststore (or one alias).

    Each certificate in the file is tried as leaf, with a chain rebuilt from
    the other certificates of the file. The first trusted chain wins.

    Never raises. When the file is a PKCS#12 container that needs a password,
    the outcome message starts with ``PASSWORD_REQUIRED_PREFIX``.

    Args:
        path: Certificate file (PEM, DER, PKCS#7, PKCS#12 or JKS)
        truststore: Trust anchors
        alias: Restrict trust to this alias' certificate
        password: PKCS#12 password
        fallback_passwords: Passwords tried on containers when none is given

    Returns:
        ValidationOutcome with the trusted chain, or the best failed attempt's chain
    """
    if path is None or _is_blank(str(path)):
        return ValidationOutcome(False, "Certificate file path is required")

    try:
        effective_store = resolve_trust_source(truststore, alias)
        file_path = Path(str(path).strip())
        if not file_path.exists():
            return ValidationOutcome(False, f"Certificate file is not found: {file_path}")
        if not file_path.is_file():
            return ValidationOutcome(False, f"Certificate path is not a file: {file_path}")

        certificates = parse_certificate_file(file_path, password, fallback_passwords)
        if not certificates:
            return ValidationOutcome(False, f"No X.509 certificates found in file: {file_path}")

        trust_manager = TrustManager.from_truststore(effective_store)
        mode = _trust_mode(alias)

        best_attempt: Optional[Tuple[List[x509.Certificate], CertificatePathError]] = None
        for leaf in certificates:
            chain = build_chain(leaf, certificates)
            error = evaluate_chain(chain, trust_manager)
            if error is None:
                subject = format_name(leaf.subject)
                logger.info(f"{file_path}: '{subject}' is trusted using {mode}")
                return ValidationOutcome(
                    True,
                    f"Certificate is trusted using {mode} (subject={subject})",
                    to_chain_links(chain),
                )
            if isinstance(error, CertificatePathError):
                best_attempt = (chain, error)
                continue
            return ValidationOutcome(
                False,
                f"Certificate validation failed: {_safe_message(error)}",
                to_chain_links(chain),
            )

        if best_attempt is None:
            return ValidationOutcome(
                False,
                "Certificate is not trusted: no valid validation attempt",
                to_chain_links(certificates),
            )
        chain, error = best_attempt
        return ValidationOutcome(
            False,
            f"Certificate from {file_path} is not trusted using {mode} ({_safe_message(error)})",
            to_chain_links(chain),
        )
    except PasswordRequiredError as e:
        return ValidationOutcome(False, _safe_message(e))
    except (InvalidInputError, NotFoundError, UnsupportedFormatError) as e:
        return ValidationOutcome(False, f"Certificate validation failed: {_safe_message(e)}")
    except Exception as e:
        logger.debug(f"Unexpected error validating {path}", exc_info=True)
        return ValidationOutcome(False, f"Certificate validation failed: unexpected error ({_safe_message(e)})")
