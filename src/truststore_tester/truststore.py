"""In-memory trust anchor collections and the PKCS#12/JKS store loader."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import jks
from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12

from truststore_tester.certificate import format_name, unique_certificates
from truststore_tester.config import SUPPORTED_STORE_TYPES
from truststore_tester.exceptions import InvalidInputError, NotFoundError, UnsupportedFormatError

logger = logging.getLogger(__name__)


@dataclass
class TruststoreEntry:
    """A named entry of a truststore."""

    alias: str
    certificate: Optional[x509.Certificate]
    chain: List[x509.Certificate] = field(default_factory=list)  # includes certificate for key entries
    has_private_key: bool = False


class Truststore:
    """
    Ordered alias -> certificate collection.

    The collection is never modified after loading; narrowing to one alias
    builds a new instance.
    """

    def __init__(
        self,
        entries: Sequence[TruststoreEntry] = (),
        store_type: str = "MEMORY",
        source: Optional[str] = None,
    ):
        self.store_type = store_type
        self.source = source
        self._entries: Dict[str, TruststoreEntry] = {}
        for entry in entries:
            if entry.alias in self._entries:
                raise InvalidInputError(f"Duplicate alias: {entry.alias}")
            self._entries[entry.alias] = entry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TruststoreEntry]:
        return iter(list(self._entries.values()))

    def __repr__(self) -> str:
        return f"Truststore(type={self.store_type}, entries={len(self)}, source={self.source!r})"

    def aliases(self) -> List[str]:
        return list(self._entries)

    def contains_alias(self, alias: str) -> bool:
        return alias in self._entries

    def get_certificate(self, alias: str) -> Optional[x509.Certificate]:
        entry = self._entries.get(alias)
        return entry.certificate if entry else None

    def certificate_aliases(self) -> List[str]:
        """Aliases that carry a certificate, in enumeration order."""
        return [entry.alias for entry in self._entries.values() if entry.certificate is not None]

    def trust_anchors(self) -> List[x509.Certificate]:
        """Certificates of all entries (trusted certificate and key entries)."""
        return [entry.certificate for entry in self._entries.values() if entry.certificate is not None]

    def all_certificates(self) -> List[x509.Certificate]:
        """Every X.509 certificate in the store, chains included, without duplicates."""
        certificates: List[x509.Certificate] = []
        for entry in self._entries.values():
            if entry.certificate is not None:
                certificates.append(entry.certificate)
            certificates.extend(entry.chain)
        return unique_certificates(certificates)

    def single_alias(self, alias: str) -> "Truststore":
        """
        Derive a one-anchor truststore containing only ``alias``'s certificate.

        Raises:
            NotFoundError: If the alias is absent or has no certificate
        """
        if alias not in self._entries:
            raise NotFoundError(f"Alias not found: {alias}")
        certificate = self._entries[alias].certificate
        if certificate is None:
            raise NotFoundError(f"No certificate found for alias: {alias}")
        return Truststore(
            [TruststoreEntry(alias=alias, certificate=certificate)],
            store_type="MEMORY",
            source=f"{self.source or self.store_type}#{alias}",
        )


def _unique_alias(alias: str, used: Dict[str, int]) -> str:
    if alias not in used:
        used[alias] = 1
        return alias
    used[alias] += 1
    unique = f"{alias}-{used[alias]}"
    logger.warning(f"Duplicate alias '{alias}' renamed to '{unique}'")
    used[unique] = 1
    return unique


def _decode_friendly_name(friendly_name: Optional[bytes]) -> Optional[str]:
    if not friendly_name:
        return None
    return friendly_name.decode("utf-8", errors="replace")


def open_pkcs12(data: bytes, password: str) -> Truststore:
    """
    Parse a PKCS#12 container.

    A key entry takes the friendly name of its certificate. Additional
    certificates with a friendly name become trusted certificate entries,
    those without one belong to the key entry's chain (or get a positional
    alias when the container holds no key).

    Raises:
        ValueError: If the data is not PKCS#12 or the password is wrong
    """
    bundle = pkcs12.load_pkcs12(data, password.encode("utf-8") if password else None)

    entries: List[TruststoreEntry] = []
    used: Dict[str, int] = {}
    additional = list(bundle.additional_certs)

    if bundle.cert is not None or bundle.key is not None:
        leaf = bundle.cert.certificate if bundle.cert is not None else None
        chain_certs = [c.certificate for c in additional if c.friendly_name is None]
        additional = [c for c in additional if c.friendly_name is not None]
        alias = (_decode_friendly_name(bundle.cert.friendly_name) if bundle.cert is not None else None) or "1"
        entries.append(
            TruststoreEntry(
                alias=_unique_alias(alias, used),
                certificate=leaf,
                chain=([leaf] if leaf is not None else []) + chain_certs,
                has_private_key=bundle.key is not None,
            )
        )

    for index, pkcs12_cert in enumerate(additional, start=len(entries) + 1):
        alias = _decode_friendly_name(pkcs12_cert.friendly_name) or str(index)
        entries.append(TruststoreEntry(alias=_unique_alias(alias, used), certificate=pkcs12_cert.certificate))

    return Truststore(entries, store_type="PKCS12")


def open_jks(data: bytes, password: str) -> Truststore:
    """
    Parse a JKS (or JCEKS) keystore with pyjks.

    Raises:
        jks.util.KeystoreException: If the data is not a keystore or the password is wrong
    """
    keystore = jks.KeyStore.loads(data, password)

    entries: List[TruststoreEntry] = []
    for alias, entry in keystore.entries.items():
        if isinstance(entry, jks.TrustedCertEntry):
            if entry.type != "X.509":
                logger.debug(f"Skipping non X.509 certificate entry '{alias}' ({entry.type})")
                continue
            entries.append(TruststoreEntry(alias=alias, certificate=x509.load_der_x509_certificate(entry.cert)))
        elif isinstance(entry, jks.PrivateKeyEntry):
            chain = [x509.load_der_x509_certificate(der) for cert_type, der in entry.cert_chain if cert_type == "X.509"]
            entries.append(
                TruststoreEntry(
                    alias=alias,
                    certificate=chain[0] if chain else None,
                    chain=chain,
                    has_private_key=True,
                )
            )
        else:
            # Secret key entries carry no certificate
            entries.append(TruststoreEntry(alias=alias, certificate=None))

    return Truststore(entries, store_type="JKS")


_STORE_OPENERS: Dict[str, Callable[[bytes, str], Truststore]] = {
    "PKCS12": open_pkcs12,
    "JKS": open_jks,
}


def load_truststore(
    source_bytes: bytes,
    password: Optional[str],
    source: Optional[str] = None,
    store_types: Sequence[str] = SUPPORTED_STORE_TYPES,
) -> Truststore:
    """
    Load a truststore, trying each supported container format in order.

    Args:
        source_bytes: Raw container bytes
        password: Store password (empty string permitted, None rejected)
        source: Description of where the bytes came from (for display)
        store_types: Formats to try, in order

    Returns:
        Truststore from the first format that parses

    Raises:
        InvalidInputError: If password is None
        UnsupportedFormatError: If no format could parse the bytes
    """
    if password is None:
        raise InvalidInputError("Password must not be null")

    attempts: List[Tuple[str, Callable[[], Truststore]]] = [
        (store_type, lambda opener=_STORE_OPENERS[store_type]: opener(source_bytes, password))
        for store_type in store_types
    ]

    last_error: Optional[Exception] = None
    for store_type, attempt in attempts:
        try:
            truststore = attempt()
        except Exception as e:
            logger.debug(f"Truststore is not readable as {store_type}: {e}")
            last_error = e
            continue
        truststore.source = source
        logger.info(f"Loaded {store_type} truststore with {len(truststore)} entries" + (f" from {source}" if source else ""))
        for entry in truststore:
            if entry.certificate is not None:
                logger.debug(f"  {entry.alias}: {format_name(entry.certificate.subject)}")
        return truststore

    details = str(last_error) if last_error is not None and str(last_error).strip() else "unknown reason"
    tried = list(store_types)
    raise UnsupportedFormatError(
        f"Failed to load truststore. Check password and store format ({'/'.join(tried)}). Details: {details}",
        formats_tried=tried,
    )
