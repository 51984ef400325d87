"""
Per-application advisory lock.

The lock is the lock_token column on the application row. Acquisition is a
single compare-and-set UPDATE committed on its own; it never waits or
retries. Release clears the token unconditionally and is idempotent.

Every writer of current_status goes through ``held()``, which releases on
every exit path. A failing release is retried a bounded number of times;
if every attempt fails the error is logged and recorded on the lease
instead of being raised.

Known limitation: tokens have no expiry. A process that dies while holding
a lock, or whose release exhausts its retries, leaves the row locked until
``release`` is called by an operator.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from db.pipeline_writer import DEFAULT_TIMEOUT_SECONDS, PipelineWriter
from models.errors import create_lock_conflict_error, create_not_found_error, sanitize_error_message

logger = logging.getLogger(__name__)

DEFAULT_RELEASE_ATTEMPTS = 3
DEFAULT_RELEASE_BACKOFF_SECONDS = 0.05


def generate_lock_token() -> str:
    """Fresh opaque token for one processing window."""
    return uuid.uuid4().hex


@dataclass
class LockLease:
    """One held lock. release_error is set once held() exits if the token could not be cleared."""

    application_id: int
    token: str
    release_error: Optional[str] = None

    @property
    def released(self) -> bool:
        return self.release_error is None


class LockCoordinator:
    """Acquire and release advisory locks on application rows."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        release_attempts: int = DEFAULT_RELEASE_ATTEMPTS,
        release_backoff: float = DEFAULT_RELEASE_BACKOFF_SECONDS,
    ):
        self.db_path = db_path
        self.timeout = timeout
        self.release_attempts = max(1, release_attempts)
        self.release_backoff = release_backoff

    def acquire(self, application_id: int) -> str:
        """
        Take the lock on one application.

        Returns:
            The token now stored on the row

        Raises:
            ToolError: LOCK_CONFLICT if already held, NOT_FOUND if the row is missing
        """
        token = generate_lock_token()
        with PipelineWriter(self.db_path, timeout=self.timeout) as writer:
            if writer.try_set_lock(application_id, token):
                writer.commit()
                logger.debug("Acquired lock on application %s", application_id)
                return token

            exists = writer.application_exists(application_id)

        if not exists:
            raise create_not_found_error("Application", application_id)

        logger.debug("Lock conflict on application %s", application_id)
        raise create_lock_conflict_error(application_id)

    def release(self, application_id: int) -> None:
        """
        Clear the lock regardless of who holds it.

        Safe to call on unlocked or missing rows.
        """
        with PipelineWriter(self.db_path, timeout=self.timeout) as writer:
            writer.clear_lock(application_id)
            writer.commit()
        logger.debug("Released lock on application %s", application_id)

    def release_with_retry(self, application_id: int) -> Optional[str]:
        """
        Release, retrying up to release_attempts times with linear backoff.

        Returns:
            None once the lock is cleared, or the last error message if
            every attempt failed. Never raises.
        """
        last_error = None
        for attempt in range(1, self.release_attempts + 1):
            try:
                self.release(application_id)
                return None
            except Exception as e:  # noqa: BLE001
                last_error = sanitize_error_message(e)
                logger.warning(
                    "Release attempt %s/%s on application %s failed: %s",
                    attempt, self.release_attempts, application_id, last_error,
                )
            if attempt < self.release_attempts:
                time.sleep(self.release_backoff * attempt)

        logger.error(
            "Lock on application %s is still held after %s release attempts: %s",
            application_id, self.release_attempts, last_error,
        )
        return last_error

    @contextmanager
    def held(self, application_id: int) -> Iterator[LockLease]:
        """
        Hold the lock for the duration of a with-block.

        Usage:
            with locks.held(application_id) as lease:
                executor.apply_transition(...)
            if not lease.released:
                ...

        The release runs on normal exit and on any exception. A release that
        still fails after its retries is logged, stored on the lease, and
        never replaces the exception already in flight.
        """
        lease = LockLease(application_id, self.acquire(application_id))
        try:
            yield lease
        finally:
            lease.release_error = self.release_with_retry(application_id)
