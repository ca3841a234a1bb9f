"""X.509 parsing and projection helpers."""

import logging
import re
from typing import Iterable, List

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.hazmat.primitives.serialization import pkcs7

from truststore_tester.models import ChainLink

logger = logging.getLogger(__name__)

_PEM_CERT_PATTERN = re.compile(rb"-----BEGIN CERTIFICATE-----(.*?)-----END CERTIFICATE-----", re.DOTALL)
_PEM_PKCS7_MARKER = b"-----BEGIN PKCS7-----"

_SAN_TYPE_LABELS = {
    x509.DNSName: "DNS",
    x509.IPAddress: "IP",
    x509.RFC822Name: "email",
    x509.UniformResourceIdentifier: "URI",
    x509.DirectoryName: "DirName",
    x509.RegisteredID: "RID",
    x509.OtherName: "otherName",
}


def format_name(name: x509.Name) -> str:
    """Format a distinguished name in RFC 4514 notation."""
    return name.rfc4514_string()


def is_self_signed(cert: x509.Certificate) -> bool:
    """Name-based self-signed check (subject == issuer); signatures are not verified."""
    return cert.issuer == cert.subject


def public_key_algorithm(cert: x509.Certificate) -> str:
    """Return the public key algorithm name ("RSA", "EC", "DSA", ...)."""
    try:
        key = cert.public_key()
    except Exception as e:
        logger.debug(f"Could not load public key of '{format_name(cert.subject)}': {e}")
        return ""
    if isinstance(key, rsa.RSAPublicKey):
        return "RSA"
    if isinstance(key, ec.EllipticCurvePublicKey):
        return "EC"
    if isinstance(key, dsa.DSAPublicKey):
        return "DSA"
    if isinstance(key, ed25519.Ed25519PublicKey):
        return "Ed25519"
    if isinstance(key, ed448.Ed448PublicKey):
        return "Ed448"
    return type(key).__name__


def to_chain_link(cert: x509.Certificate) -> ChainLink:
    return ChainLink(
        subject=format_name(cert.subject),
        issuer=format_name(cert.issuer),
        not_after=cert.not_valid_after_utc,
    )


def to_chain_links(certs: Iterable[x509.Certificate]) -> List[ChainLink]:
    return [to_chain_link(cert) for cert in certs]


def format_alt_names(cert: x509.Certificate) -> List[str]:
    """
    Render the subjectAltName extension as "<type>: <value>" strings.

    Returns an empty list when the extension is absent. Malformed extensions
    raise ValueError.
    """
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []

    result: List[str] = []
    for general_name in san:
        label = _SAN_TYPE_LABELS.get(type(general_name), "unknown")
        value = general_name.value
        if isinstance(value, x509.Name):
            value = format_name(value)
        elif isinstance(general_name, x509.RegisteredID):
            value = value.dotted_string
        elif isinstance(general_name, x509.OtherName):
            value = f"{general_name.type_id.dotted_string}={value.hex()}"
        result.append(f"{label}: {value}")
    return result


def split_pem_certificates(data: bytes) -> List[bytes]:
    """Split PEM data into individual certificate blocks."""
    return [
        b"-----BEGIN CERTIFICATE-----" + match + b"-----END CERTIFICATE-----\n"
        for match in _PEM_CERT_PATTERN.findall(data)
    ]


def load_certificates(data: bytes) -> List[x509.Certificate]:
    """
    Parse every X.509 certificate from a certificate stream.

    Handles PEM (one or more concatenated blocks), a single DER certificate and
    PEM or DER PKCS#7 bundles.

    Returns:
        Parsed certificates in stream order; empty if nothing could be parsed
    """
    if not data:
        return []

    if b"-----BEGIN" in data:
        certificates: List[x509.Certificate] = []
        for block in split_pem_certificates(data):
            try:
                certificates.append(x509.load_pem_x509_certificate(block))
            except ValueError as e:
                logger.debug(f"Skipping unparseable PEM certificate block: {e}")
        if certificates:
            return certificates
        if _PEM_PKCS7_MARKER in data:
            try:
                return list(pkcs7.load_pem_pkcs7_certificates(data))
            except ValueError as e:
                logger.debug(f"PEM PKCS#7 bundle could not be parsed: {e}")
        return []

    try:
        return [x509.load_der_x509_certificate(data)]
    except ValueError:
        pass

    try:
        return list(pkcs7.load_der_pkcs7_certificates(data))
    except ValueError as e:
        logger.debug(f"Data is neither a DER certificate nor a PKCS#7 bundle: {e}")
    return []


def unique_certificates(certs: Iterable[x509.Certificate]) -> List[x509.Certificate]:
    """Drop exact duplicates, keeping first occurrence order."""
    result: List[x509.Certificate] = []
    for cert in certs:
        if cert not in result:
            result.append(cert)
    return result
