"""Network operations for TLS connections."""

import _ssl
import logging
import socket
import ssl
from typing import List

from cryptography.hazmat.primitives import serialization

from truststore_tester.config import CONNECT_TIMEOUT, READ_TIMEOUT
from truststore_tester.exceptions import (
    ConnectionTimeoutError,
    DNSResolutionError,
    NetworkError,
    TLSHandshakeError,
    TrustRejectedError,
)
from truststore_tester.truststore import Truststore

logger = logging.getLogger(__name__)


def create_trust_context(truststore: Truststore) -> ssl.SSLContext:
    """
    Create a TLS client context that trusts only the truststore's anchors.

    System roots are not loaded. Hostname matching is disabled; only the
    trust decision counts. Any anchor may terminate a path, including
    intermediates.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_REQUIRED
    context.verify_flags |= ssl.VERIFY_X509_PARTIAL_CHAIN

    anchors = truststore.trust_anchors()
    if anchors:
        cadata = "".join(cert.public_bytes(serialization.Encoding.PEM).decode("ascii") for cert in anchors)
        context.load_verify_locations(cadata=cadata)
        logger.debug(f"TLS context trusts {len(anchors)} anchor(s)")
    else:
        logger.warning("Truststore has no certificates; every server will be rejected")
    return context


def _unverified_chain(ssl_sock: ssl.SSLSocket) -> List[bytes]:
    # SSLSocket.get_unverified_chain() is public from Python 3.13; the
    # underlying _ssl object has offered it since 3.10.
    if hasattr(ssl_sock, "get_unverified_chain"):
        return [bytes(cert) for cert in ssl_sock.get_unverified_chain() or []]
    sslobj = getattr(ssl_sock, "_sslobj", None)
    if sslobj is not None and hasattr(sslobj, "get_unverified_chain"):
        return [cert.public_bytes(_ssl.ENCODING_DER) for cert in sslobj.get_unverified_chain() or []]
    return []


def _peer_chain(ssl_sock: ssl.SSLSocket) -> List[bytes]:
    """DER certificates presented by the peer, leaf first."""
    try:
        chain = _unverified_chain(ssl_sock)
        if chain:
            logger.debug(f"Received {len(chain)} certificate(s) in peer chain")
            return chain
    except Exception as e:
        logger.debug(f"Error reading unverified peer chain: {e}")

    leaf_der = ssl_sock.getpeercert(binary_form=True)
    if not leaf_der:
        raise TLSHandshakeError("No certificate received from server")
    logger.debug("Peer chain not available in this Python build, using leaf certificate only")
    return [leaf_der]


def connect_tls(
    host: str,
    port: int,
    context: ssl.SSLContext,
    connect_timeout: float = CONNECT_TIMEOUT,
    read_timeout: float = READ_TIMEOUT,
) -> List[bytes]:
    """
    Open a TCP connection, perform the TLS handshake and return the peer chain.

    Args:
        host: Target hostname or IP address (also sent as SNI)
        port: Target port
        context: TLS client context deciding trust
        connect_timeout: TCP connect timeout in seconds
        read_timeout: Handshake timeout in seconds

    Returns:
        DER-encoded certificates presented by the server, leaf first

    Raises:
        DNSResolutionError: If the host cannot be resolved
        ConnectionTimeoutError: If connecting or the handshake times out
        NetworkError: If the host refuses or cannot be reached
        TrustRejectedError: If the server certificate is not trusted
        TLSHandshakeError: If the TLS negotiation fails otherwise
    """
    logger.debug(f"Connecting to {host}:{port} (connect timeout={connect_timeout}s)")

    try:
        sock = socket.create_connection((host, port), timeout=connect_timeout)
    except socket.gaierror as e:
        raise DNSResolutionError(f"DNS resolution failed for {host}: {e}", hostname=host, port=port)
    except TimeoutError:
        raise ConnectionTimeoutError(f"Connection timeout after {connect_timeout}s", hostname=host, port=port)
    except OSError as e:
        raise NetworkError(f"Connection to {host}:{port} failed: {e}", hostname=host, port=port)

    with sock:
        logger.debug(f"TCP connection established to {sock.getpeername()}")
        sock.settimeout(read_timeout)
        try:
            with context.wrap_socket(sock, server_hostname=host) as ssl_sock:
                logger.debug(f"TLS handshake completed ({ssl_sock.version()}, {ssl_sock.cipher()[0]})")
                return _peer_chain(ssl_sock)
        except ssl.SSLCertVerificationError as e:
            raise TrustRejectedError(e.verify_message or str(e))
        except ssl.SSLError as e:
            raise TLSHandshakeError(f"TLS handshake failed: {e}", hostname=host, port=port)
        except TimeoutError:
            raise ConnectionTimeoutError(f"TLS handshake timeout after {read_timeout}s", hostname=host, port=port)
        except OSError as e:
            raise TLSHandshakeError(f"TLS handshake failed: {e}", hostname=host, port=port)
