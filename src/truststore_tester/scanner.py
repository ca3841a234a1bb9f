"""Alias scanning: find the truststore entries that individually trust a target."""

import logging
from typing import Callable, Optional, Sequence

from truststore_tester.config import CONNECT_TIMEOUT, DEFAULT_CONTAINER_PASSWORDS, READ_TIMEOUT
from truststore_tester.models import FileTarget, LiveTarget, ScanOutcome, ScanProgress, ScanTarget, ValidationOutcome
from truststore_tester.truststore import Truststore
from truststore_tester.validation import validate_file, validate_live

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ScanProgress], None]


def _validator_for(
    target: ScanTarget,
    truststore: Truststore,
    connect_timeout: float,
    read_timeout: float,
    fallback_passwords: Sequence[str],
) -> Callable[[str], ValidationOutcome]:
    if isinstance(target, LiveTarget):
        return lambda alias: validate_live(
            target.host,
            target.port,
            truststore,
            alias,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )
    if isinstance(target, FileTarget):
        return lambda alias: validate_file(
            target.path,
            truststore,
            alias,
            password=target.password,
            fallback_passwords=fallback_passwords,
        )
    raise TypeError(f"Unsupported scan target: {target!r}")


def scan_aliases(
    target: ScanTarget,
    truststore: Truststore,
    progress: Optional[ProgressCallback] = None,
    connect_timeout: float = CONNECT_TIMEOUT,
    read_timeout: float = READ_TIMEOUT,
    fallback_passwords: Sequence[str] = DEFAULT_CONTAINER_PASSWORDS,
) -> ScanOutcome:
    """
    Validate ``target`` once per certificate-bearing alias of ``truststore``.

    Aliases without a certificate are skipped and not counted. ``progress`` is
    called synchronously after every alias, on the caller's thread. Unexpected
    errors end the scan and are returned with the partial result.

    Args:
        target: LiveTarget or FileTarget
        truststore: Trust anchors to scan
        progress: Optional callback receiving a ScanProgress per alias

    Returns:
        ScanOutcome with the aliases that trust the target, in store order
    """
    outcome = ScanOutcome()
    try:
        validate = _validator_for(target, truststore, connect_timeout, read_timeout, fallback_passwords)
        aliases = truststore.certificate_aliases()
        total = len(aliases)
        logger.info(f"Scanning {total} alias(es) against {target}")

        for alias in aliases:
            result = validate(alias)
            outcome.checked_count += 1
            if result.success:
                outcome.valid_aliases.append(alias)
                logger.debug(f"Alias '{alias}': trusted")
            else:
                outcome.failed_count += 1
                logger.debug(f"Alias '{alias}': {result.message}")
            if progress is not None:
                progress(
                    ScanProgress(
                        checked_count=outcome.checked_count,
                        total_count=total,
                        current_alias=alias,
                        valid_count_so_far=len(outcome.valid_aliases),
                    )
                )
    except Exception as e:
        logger.warning(f"Alias scan against {target} aborted: {e}")
        outcome.error = str(e) or type(e).__name__
        return outcome

    logger.info(
        f"Alias scan against {target} finished: {len(outcome.valid_aliases)} valid, "
        f"{outcome.failed_count} failed of {outcome.checked_count} checked"
    )
    return outcome
