"""
Retry and polling helpers for AWS propagation delays.

This module provides:
- Error classification for throttled AWS API calls
- Fixed-delay retries of boolean checks (HTTP probes, Lambda invokes)
- Status polling for ACM certificates, CloudFront invalidations and
  distribution deployments
"""

import logging
from collections.abc import Callable

import boto3
from botocore.exceptions import ClientError
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    wait_fixed,
)

from .aws import get_distribution, get_invalidation_status
from .dns import FAILED_CERTIFICATE_STATUSES, describe_certificate, validation_records

logger = logging.getLogger(__name__)

# Error codes that should trigger a retry of the same call
RETRYABLE_ERROR_CODES = {
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "ServiceUnavailable",
    "InternalFailure",
}

CERTIFICATE_TIMEOUT_SECONDS = 30 * 60
CERTIFICATE_INTERVAL_SECONDS = 30
VALIDATION_RECORDS_TIMEOUT_SECONDS = 5 * 60
INVALIDATION_TIMEOUT_SECONDS = 15 * 60
DISTRIBUTION_TIMEOUT_SECONDS = 30 * 60


class PollTimeoutError(Exception):
    """A resource did not reach the expected state in time."""

    def __init__(self, message: str, last_status: str | None = None):
        super().__init__(message)
        self.last_status = last_status


class CertificateFailedError(Exception):
    """ACM reported a terminal failure for a certificate."""

    pass


def is_retryable_error(exception: BaseException) -> bool:
    """Check if exception is a throttling/transient AWS error."""
    if isinstance(exception, ClientError):
        code = exception.response.get("Error", {}).get("Code", "")
        return code in RETRYABLE_ERROR_CODES
    return False


aws_retry = retry(
    retry=retry_if_exception(is_retryable_error),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)


def _log_retry(retry_state: RetryCallState) -> None:
    name = getattr(retry_state.fn, "__name__", "check")
    logger.info("%s not ready (attempt %d), retrying", name, retry_state.attempt_number)


def retry_until_true(check: Callable[[], bool], attempts: int, delay: float) -> bool:
    """
    Run ``check`` until it returns True, at most ``attempts`` times.

    Returns:
        True as soon as a check passes, False once attempts are exhausted.
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda ok: not ok),
        before_sleep=_log_retry,
        retry_error_callback=lambda state: False,
    )
    return retrying(check)


def poll_status(
    fetch: Callable[[], str],
    done: tuple[str, ...],
    timeout: float,
    interval: float,
    what: str,
) -> str:
    """
    Poll ``fetch`` until it returns one of ``done``.

    Exceptions raised by ``fetch`` propagate immediately.

    Raises:
        PollTimeoutError: If ``timeout`` seconds pass first.
    """
    retrying = Retrying(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda status: status not in done),
        before_sleep=lambda state: logger.info(
            "%s status: %s", what, state.outcome.result() if state.outcome else "unknown"
        ),
    )
    try:
        return retrying(fetch)
    except RetryError as e:
        last = e.last_attempt.result()
        raise PollTimeoutError(f"Timed out waiting for {what} (last status: {last})", last) from e


def wait_for_certificate(
    session: boto3.Session,
    arn: str,
    timeout: float = CERTIFICATE_TIMEOUT_SECONDS,
    interval: float = CERTIFICATE_INTERVAL_SECONDS,
) -> str:
    """Wait until a certificate is ISSUED."""

    @aws_retry
    def fetch() -> str:
        certificate = describe_certificate(session, arn)
        if certificate is None:
            raise CertificateFailedError(f"Certificate {arn} no longer exists")
        status = certificate["Status"]
        if status in FAILED_CERTIFICATE_STATUSES:
            raise CertificateFailedError(f"Certificate {arn} is {status}")
        return status

    return poll_status(fetch, ("ISSUED",), timeout, interval, f"certificate {arn}")


def wait_for_invalidation(
    session: boto3.Session,
    distribution_id: str,
    invalidation_id: str,
    timeout: float = INVALIDATION_TIMEOUT_SECONDS,
    interval: float = 15,
) -> str:
    """Wait until a CloudFront invalidation is Completed."""

    @aws_retry
    def fetch() -> str:
        return get_invalidation_status(session, distribution_id, invalidation_id)

    return poll_status(fetch, ("Completed",), timeout, interval, f"invalidation {invalidation_id}")


def wait_for_distribution_deployed(
    session: boto3.Session,
    distribution_id: str,
    timeout: float = DISTRIBUTION_TIMEOUT_SECONDS,
    interval: float = 30,
) -> str:
    """Wait until a distribution's last change has propagated."""

    @aws_retry
    def fetch() -> str:
        distribution = get_distribution(session, distribution_id)
        if distribution is None:
            raise LookupError(f"Distribution {distribution_id} not found")
        return distribution["Status"]

    return poll_status(fetch, ("Deployed",), timeout, interval, f"distribution {distribution_id}")


def wait_for_validation_records(
    session: boto3.Session,
    arn: str,
    timeout: float = VALIDATION_RECORDS_TIMEOUT_SECONDS,
    interval: float = 10,
) -> list[dict[str, str]]:
    """Wait until ACM publishes a validation CNAME for every domain on the certificate."""

    @aws_retry
    def fetch() -> dict:
        certificate = describe_certificate(session, arn)
        if certificate is None:
            raise CertificateFailedError(f"Certificate {arn} no longer exists")
        return certificate

    def incomplete(certificate: dict) -> bool:
        options = certificate.get("DomainValidationOptions", [])
        return not options or any("ResourceRecord" not in o for o in options)

    retrying = Retrying(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_result(incomplete),
        before_sleep=lambda state: logger.info("Validation records for %s not published yet", arn),
    )
    try:
        return validation_records(retrying(fetch))
    except RetryError as e:
        raise PollTimeoutError(f"Timed out waiting for validation records of {arn}") from e
