"""Shared fixtures: an on-the-fly PKI and helpers to write certificate files."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import jks
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from truststore_tester.truststore import Truststore, TruststoreEntry


def make_key():
    return ec.generate_private_key(ec.SECP256R1())


def make_name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def make_certificate(
    subject: str,
    issuer: Optional[str] = None,
    key=None,
    issuer_key=None,
    ca: bool = False,
    valid_from_days: int = -1,
    valid_days: int = 365,
    san: Optional[List[str]] = None,
    key_usage: Optional[x509.KeyUsage] = None,
    extended_key_usage: Optional[List[x509.ObjectIdentifier]] = None,
):
    """Build a certificate; self-signed unless issuer/issuer_key are given. Returns (cert, key)."""
    key = key or make_key()
    issuer_key = issuer_key or key
    now = datetime.now(timezone.utc)

    builder = (
        x509.CertificateBuilder()
        .subject_name(make_name(subject))
        .issuer_name(make_name(issuer or subject))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now + timedelta(days=valid_from_days))
        .not_valid_after(now + timedelta(days=valid_days))
    )
    if ca:
        builder = builder.add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
    if san:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in san]), critical=False
        )
    if key_usage is not None:
        builder = builder.add_extension(key_usage, critical=True)
    if extended_key_usage is not None:
        builder = builder.add_extension(x509.ExtendedKeyUsage(extended_key_usage), critical=False)

    return builder.sign(issuer_key, hashes.SHA256()), key


def make_store(entries: dict, store_type: str = "MEMORY") -> Truststore:
    return Truststore(
        [TruststoreEntry(alias=alias, certificate=cert) for alias, cert in entries.items()],
        store_type=store_type,
    )


def to_pem(certs: Iterable[x509.Certificate]) -> bytes:
    return b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in certs)


def write_pem(path: Path, certs: Iterable[x509.Certificate]) -> Path:
    path.write_bytes(to_pem(certs))
    return path


@dataclass
class PKI:
    root: x509.Certificate
    root_key: object
    intermediate: x509.Certificate
    intermediate_key: object
    leaf: x509.Certificate
    leaf_key: object


@pytest.fixture(scope="session")
def pki() -> PKI:
    """Root CA -> Intermediate CA -> localhost leaf."""
    root, root_key = make_certificate("Test Root CA", ca=True, valid_days=3650)
    intermediate, intermediate_key = make_certificate(
        "Test Intermediate CA", issuer="Test Root CA", issuer_key=root_key, ca=True, valid_days=1825
    )
    leaf, leaf_key = make_certificate(
        "localhost",
        issuer="Test Intermediate CA",
        issuer_key=intermediate_key,
        san=["localhost"],
        valid_days=90,
    )
    return PKI(root, root_key, intermediate, intermediate_key, leaf, leaf_key)


@pytest.fixture(scope="session")
def unrelated_root():
    """Self-signed CA that issued nothing in the test PKI."""
    cert, _ = make_certificate("Unrelated Root CA", ca=True, valid_days=3650)
    return cert


def pkcs12_truststore_bytes(entries: dict, password: str = "changeit") -> bytes:
    """PKCS#12 container of trusted certificates, one per alias (friendly name)."""
    cas = [pkcs12.PKCS12Certificate(cert, alias.encode("utf-8")) for alias, cert in entries.items()]
    encryption = (
        serialization.BestAvailableEncryption(password.encode("utf-8"))
        if password
        else serialization.NoEncryption()
    )
    return pkcs12.serialize_key_and_certificates(None, None, None, cas, encryption)


def jks_truststore_bytes(entries: dict, password: str = "changeit") -> bytes:
    """JKS keystore of trusted certificate entries."""
    store_entries = [
        jks.TrustedCertEntry.new(alias, cert.public_bytes(serialization.Encoding.DER))
        for alias, cert in entries.items()
    ]
    return jks.KeyStore.new("jks", store_entries).saves(password)
