"""Truststore sources: local files, tar.gz archives and HTTP(S) downloads."""

import io
import logging
import tarfile
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

import httpx

from truststore_tester.exceptions import ArchiveError, InvalidInputError, StoreDownloadError
from truststore_tester.http_client import create_http_client
from truststore_tester.truststore import Truststore, load_truststore

logger = logging.getLogger(__name__)

_ARCHIVE_SUFFIXES = (".tar.gz", ".tgz")
_GZIP_MAGIC = b"\x1f\x8b"


def extract_single_file(archive_bytes: bytes) -> bytes:
    """
    Return the content of the only regular file in a gzip-compressed tar.

    Directories are ignored.

    Raises:
        ArchiveError: If the archive is unreadable or holds zero or several files
    """
    extracted: Optional[bytes] = None
    file_count = 0
    try:
        with tarfile.open(fileobj=io.BytesIO(archive_bytes), mode="r:gz") as tar:
            for member in tar:
                if member.isdir():
                    continue
                if not member.isfile():
                    logger.debug(f"Ignoring non-regular archive member '{member.name}'")
                    continue
                file_count += 1
                if file_count > 1:
                    raise ArchiveError("tar.gz must contain exactly one file")
                handle = tar.extractfile(member)
                extracted = handle.read() if handle is not None else b""
                logger.debug(f"Extracted '{member.name}' ({len(extracted)} bytes) from archive")
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ArchiveError(f"Invalid tar.gz archive: {e}")

    if file_count != 1 or extracted is None:
        raise ArchiveError("tar.gz must contain exactly one file")
    return extracted


def _is_archive_name(name: str) -> bool:
    return name.lower().endswith(_ARCHIVE_SUFFIXES)


def read_store_file(path: Union[str, Path]) -> bytes:
    """Read a truststore file, unpacking it if it is a .tar.gz/.tgz archive."""
    path = Path(path)
    data = path.read_bytes()
    if _is_archive_name(path.name):
        logger.debug(f"Unpacking truststore archive {path}")
        return extract_single_file(data)
    return data


def _validate_http_url(raw_url: str) -> str:
    url = (raw_url or "").strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        raise InvalidInputError(f"Invalid URL syntax: {raw_url}")
    if not parsed.scheme:
        raise InvalidInputError("Invalid URL: missing scheme. Use full URL like https://host/path.tar.gz")
    if parsed.scheme.lower() not in ("http", "https"):
        raise InvalidInputError(f"Invalid URL scheme: {parsed.scheme}. Only http/https supported")
    if not parsed.hostname:
        raise InvalidInputError("Invalid URL: missing host. Use FQDN or resolvable host with scheme")
    return url


def _should_treat_as_archive(url: str, response: httpx.Response) -> bool:
    if _is_archive_name(urlparse(url).path):
        return True
    content_type = response.headers.get("content-type", "").lower()
    if "gzip" in content_type or "x-tar" in content_type:
        return True
    return response.content[:2] == _GZIP_MAGIC


def download_store(url: str, client: Optional[httpx.Client] = None) -> bytes:
    """
    Download a truststore (or a tar.gz archive containing one).

    Args:
        url: http(s) URL
        client: Optional preconfigured httpx client

    Returns:
        Raw truststore bytes

    Raises:
        InvalidInputError: If the URL is not a usable http(s) URL
        StoreDownloadError: On transport errors or non-2xx responses
        ArchiveError: If an archive does not hold exactly one file
    """
    url = _validate_http_url(url)
    logger.info(f"Downloading truststore from {url}")

    own_client = client is None
    http_client = client or create_http_client()
    try:
        response = http_client.get(url)
    except httpx.HTTPError as e:
        raise StoreDownloadError(f"Failed to download truststore from {url}: {e}", url=url)
    finally:
        if own_client:
            http_client.close()

    if not 200 <= response.status_code < 300:
        raise StoreDownloadError(
            f"Failed to download truststore archive from URL. HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )

    if _should_treat_as_archive(url, response):
        return extract_single_file(response.content)
    return response.content


def is_url(source: str) -> bool:
    return source.strip().lower().startswith(("http://", "https://"))


def load_truststore_source(source: str, password: Optional[str], client: Optional[httpx.Client] = None) -> Truststore:
    """
    Load a truststore from a file path or an http(s) URL.

    Raises:
        InvalidInputError: If the source is blank or the password is None
        UnsupportedFormatError: If the bytes are neither PKCS#12 nor JKS
    """
    if source is None or not source.strip():
        raise InvalidInputError("Source value must not be empty")
    source = source.strip()
    data = download_store(source, client) if is_url(source) else read_store_file(source)
    return load_truststore(data, password, source=source)
