"""Structured exception taxonomy for truststore validation."""


class TruststoreTesterError(Exception):
    """Base exception for all truststore-tester errors."""

    pass


class InvalidInputError(TruststoreTesterError, ValueError):
    """Blank or missing required field, unknown alias, bad port."""

    pass


class NotFoundError(TruststoreTesterError):
    """Missing file or alias."""

    pass


class StoreError(TruststoreTesterError):
    """Trust store loading errors."""

    def __init__(self, message: str, formats_tried: list[str] | None = None):
        super().__init__(message)
        self.formats_tried = formats_tried or []


class UnsupportedFormatError(StoreError):
    """No parser recognized the container."""

    pass


class PasswordRequiredError(UnsupportedFormatError):
    """A password-protected PKCS#12 container was found but no password was given."""

    pass


class ArchiveError(StoreError):
    """Archive does not contain exactly one regular file."""

    pass


class StoreDownloadError(StoreError):
    """Trust store could not be downloaded."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class NetworkError(TruststoreTesterError):
    """Network-related errors (connection, timeout, DNS, etc.)."""

    def __init__(self, message: str, hostname: str | None = None, port: int | None = None):
        super().__init__(message)
        self.hostname = hostname
        self.port = port


class DNSResolutionError(NetworkError):
    """DNS resolution failed."""

    pass


class ConnectionTimeoutError(NetworkError):
    """Connection or handshake timeout."""

    pass


class TLSHandshakeError(NetworkError):
    """TLS handshake failed."""

    pass


class TrustRejectedError(TruststoreTesterError):
    """Handshake or chain failed trust evaluation."""

    pass


class CertificatePathError(TrustRejectedError):
    """The trust primitive rejected a certification path."""

    def __init__(self, message: str, subject: str | None = None):
        super().__init__(message)
        self.subject = subject
