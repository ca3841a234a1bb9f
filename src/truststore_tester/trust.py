"""Trust evaluation of candidate chains against a set of trust anchors."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID

from truststore_tester.certificate import format_name, public_key_algorithm
from truststore_tester.exceptions import CertificatePathError
from truststore_tester.truststore import Truststore

logger = logging.getLogger(__name__)

# TLS server authentication types and the key usage they demand of the leaf
_KU_SIGNATURE_AUTH_TYPES = frozenset({"DHE_DSS", "DHE_RSA", "ECDHE_ECDSA", "ECDHE_RSA", "RSA_EXPORT", "UNKNOWN"})
_KU_ENCIPHERMENT_AUTH_TYPES = frozenset({"RSA"})
_KU_AGREEMENT_AUTH_TYPES = frozenset({"DH_DSS", "DH_RSA", "ECDH_ECDSA", "ECDH_RSA"})

_AUTH_TYPES_BY_KEY_ALGORITHM = {
    "EC": ("ECDHE_ECDSA", "ECDSA"),
    "ECDSA": ("ECDHE_ECDSA", "ECDSA"),
    "RSA": ("ECDHE_RSA", "RSA"),
    "DSA": ("DHE_DSS", "DSA"),
}


def auth_hypotheses(key_algorithm: Optional[str]) -> List[str]:
    """
    Authentication types to try for a leaf with the given key algorithm.

    Order: the raw algorithm name (uppercased), the algorithm's cipher-suite
    labels, then "UNKNOWN". Duplicates are removed, order is kept.
    """
    hypotheses: List[str] = []
    algorithm = (key_algorithm or "").strip().upper()
    if algorithm:
        hypotheses.append(algorithm)
    hypotheses.extend(_AUTH_TYPES_BY_KEY_ALGORITHM.get(algorithm, ()))
    hypotheses.append("UNKNOWN")
    return list(dict.fromkeys(hypotheses))


def _public_key_der(cert: x509.Certificate) -> bytes:
    return cert.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def _describe(cert: x509.Certificate) -> str:
    return format_name(cert.subject) or f"serial {cert.serial_number:x}"


class TrustManager:
    """
    Server trust checks backed only by the given anchors.

    ``check_server_trusted`` raises ``CertificatePathError`` when the path is
    not trusted and ``ValueError`` for bad arguments.
    """

    def __init__(self, anchors: Sequence[x509.Certificate]):
        self.anchors = list(anchors)
        self._anchor_keys = set()
        for anchor in self.anchors:
            try:
                self._anchor_keys.add((anchor.subject.public_bytes(), _public_key_der(anchor)))
            except Exception as e:
                logger.warning(f"Ignoring trust anchor '{_describe(anchor)}' with unusable public key: {e}")

    @classmethod
    def from_truststore(cls, truststore: Truststore) -> "TrustManager":
        return cls(truststore.trust_anchors())

    def is_anchor(self, cert: x509.Certificate) -> bool:
        """True if ``cert`` has the subject and public key of a trust anchor."""
        try:
            return (cert.subject.public_bytes(), _public_key_der(cert)) in self._anchor_keys
        except Exception:
            return False

    def _issuing_anchor(self, cert: x509.Certificate) -> Optional[x509.Certificate]:
        for anchor in self.anchors:
            if anchor.subject != cert.issuer:
                continue
            try:
                cert.verify_directly_issued_by(anchor)
            except (InvalidSignature, ValueError, TypeError) as e:
                logger.debug(f"Anchor '{_describe(anchor)}' did not sign '{_describe(cert)}': {e}")
                continue
            return anchor
        return None

    def _trusted_path(self, chain: Sequence[x509.Certificate]) -> List[x509.Certificate]:
        """Shortest prefix of ``chain`` that ends at (or is issued by) an anchor, anchor appended."""
        for index, cert in enumerate(chain):
            if index > 0 and cert.subject != chain[index - 1].issuer:
                break
            if self.is_anchor(cert):
                return list(chain[: index + 1])
            anchor = self._issuing_anchor(cert)
            if anchor is not None:
                return list(chain[: index + 1]) + [anchor]
        raise CertificatePathError(
            "PKIX path building failed: unable to find valid certification path to requested target",
            subject=_describe(chain[0]),
        )

    def _check_path(self, path: List[x509.Certificate], at: datetime) -> None:
        # The last element is the anchor: neither its validity nor its
        # constraints are checked.
        for index, cert in enumerate(path[:-1]):
            issuer = path[index + 1]
            try:
                cert.verify_directly_issued_by(issuer)
            except (InvalidSignature, ValueError, TypeError) as e:
                raise CertificatePathError(
                    f"Signature check failed for '{_describe(cert)}' issued by '{_describe(issuer)}': {str(e) or 'invalid signature'}",
                    subject=_describe(cert),
                )
            if at < cert.not_valid_before_utc:
                raise CertificatePathError(
                    f"Certificate '{_describe(cert)}' is not yet valid (NotBefore {cert.not_valid_before_utc.isoformat()})",
                    subject=_describe(cert),
                )
            if at > cert.not_valid_after_utc:
                raise CertificatePathError(
                    f"Certificate '{_describe(cert)}' has expired (NotAfter {cert.not_valid_after_utc.isoformat()})",
                    subject=_describe(cert),
                )
            if index > 0:
                self._check_ca(cert, intermediates_below=index - 1)

    @staticmethod
    def _check_ca(cert: x509.Certificate, intermediates_below: int) -> None:
        try:
            constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
        except x509.ExtensionNotFound:
            if cert.version == x509.Version.v1:
                return
            raise CertificatePathError(f"Issuer '{_describe(cert)}' is not a CA certificate", subject=_describe(cert))
        if not constraints.ca:
            raise CertificatePathError(f"Issuer '{_describe(cert)}' is not a CA certificate", subject=_describe(cert))
        if constraints.path_length is not None and intermediates_below > constraints.path_length:
            raise CertificatePathError(f"Path length constraint of '{_describe(cert)}' violated", subject=_describe(cert))

    @staticmethod
    def _check_end_entity(leaf: x509.Certificate, auth_type: str) -> None:
        try:
            key_usage: Optional[x509.KeyUsage] = leaf.extensions.get_extension_for_class(x509.KeyUsage).value
        except x509.ExtensionNotFound:
            key_usage = None

        if auth_type in _KU_SIGNATURE_AUTH_TYPES:
            allowed = key_usage is None or key_usage.digital_signature
            required = "digitalSignature"
        elif auth_type in _KU_ENCIPHERMENT_AUTH_TYPES:
            allowed = key_usage is None or key_usage.key_encipherment
            required = "keyEncipherment"
        elif auth_type in _KU_AGREEMENT_AUTH_TYPES:
            allowed = key_usage is None or key_usage.key_agreement
            required = "keyAgreement"
        else:
            raise CertificatePathError(f"Unknown authType: {auth_type}", subject=_describe(leaf))

        if not allowed:
            raise CertificatePathError(
                f"KeyUsage does not allow {required} (authType {auth_type})", subject=_describe(leaf)
            )

        try:
            eku = leaf.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        except x509.ExtensionNotFound:
            return
        if ExtendedKeyUsageOID.SERVER_AUTH not in eku and ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE not in eku:
            raise CertificatePathError(
                "Extended key usage does not permit use for TLS server authentication", subject=_describe(leaf)
            )

    def check_server_trusted(
        self,
        chain: Sequence[x509.Certificate],
        auth_type: str,
        at: Optional[datetime] = None,
    ) -> None:
        """
        Check that ``chain`` (leaf first) is trusted for TLS server use.

        Raises:
            ValueError: If chain or auth_type is empty
            CertificatePathError: If the chain is not trusted
        """
        if not chain:
            raise ValueError("null or zero-length certificate chain")
        if not auth_type:
            raise ValueError("null or zero-length authentication type")

        at = at or datetime.now(timezone.utc)
        path = self._trusted_path(chain)
        self._check_path(path, at)
        # End-entity checks are skipped when the leaf itself is an anchor
        if len(path) > 1:
            self._check_end_entity(chain[0], auth_type)


def evaluate_chain(
    chain: Sequence[x509.Certificate],
    trust_manager: TrustManager,
    at: Optional[datetime] = None,
) -> Optional[Exception]:
    """
    Evaluate ``chain`` under every authentication-type hypothesis of its leaf.

    Returns:
        None if one hypothesis is accepted. Otherwise the last
        CertificatePathError/ValueError, or the first other exception, which
        ends the search immediately.
    """
    if not chain:
        return ValueError("null or zero-length certificate chain")

    last_error: Optional[Exception] = None
    for auth_type in auth_hypotheses(public_key_algorithm(chain[0])):
        try:
            trust_manager.check_server_trusted(chain, auth_type, at)
        except (CertificatePathError, ValueError) as e:
            logger.debug(f"authType {auth_type} rejected for '{_describe(chain[0])}': {e}")
            last_error = e
            continue
        except Exception as e:
            logger.debug(f"Trust check aborted for '{_describe(chain[0])}': {e!r}")
            return e
        logger.debug(f"Chain for '{_describe(chain[0])}' trusted with authType {auth_type}")
        return None
    return last_error
