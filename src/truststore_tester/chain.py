"""Candidate chain reconstruction from an unordered certificate pool."""

import logging
from typing import List, Optional, Sequence

from cryptography import x509

from truststore_tester.certificate import format_name, is_self_signed

logger = logging.getLogger(__name__)


def find_issuer(cert: x509.Certificate, pool: Sequence[x509.Certificate]) -> Optional[x509.Certificate]:
    """
    Return the first certificate in ``pool`` whose subject equals ``cert``'s issuer.

    Matching is by distinguished name only; key identifiers and signatures
    are not considered. ``cert`` itself is never returned.
    """
    for candidate in pool:
        if candidate == cert:
            continue
        if candidate.subject == cert.issuer:
            return candidate
    return None


def build_chain(leaf: x509.Certificate, pool: Sequence[x509.Certificate]) -> List[x509.Certificate]:
    """
    Build a candidate certification path (leaf -> ... -> root) from ``pool``.

    Greedy and non-backtracking: when several certificates share a subject,
    the first one in pool order wins. Stops when no issuer is found, when the
    issuer is already part of the chain, or after appending a self-signed
    issuer.

    Args:
        leaf: Certificate to start from
        pool: Unordered certificates (may include ``leaf``)

    Returns:
        Ordered chain starting with ``leaf``
    """
    chain: List[x509.Certificate] = [leaf]
    current = leaf

    while True:
        issuer = find_issuer(current, pool)
        if issuer is None:
            logger.debug(f"No issuer found for '{format_name(current.issuer)}'")
            break
        if issuer in chain:
            logger.debug(f"Issuer '{format_name(issuer.subject)}' already in chain, stopping")
            break
        chain.append(issuer)
        if is_self_signed(issuer):
            break
        current = issuer

    logger.debug(f"Candidate chain for '{format_name(leaf.subject)}' has {len(chain)} certificate(s)")
    return chain
