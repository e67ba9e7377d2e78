import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, NamedTuple, Optional

from security.keyed_lock import KeyedLock
from utils.clock import seconds_until, utcnow
from utils.identifiers import normalize_identifier

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    count: int
    window_reset_at: datetime
    locked_until: Optional[datetime] = None


class RateLimitDecision(NamedTuple):
    allowed: bool
    retry_after_seconds: int = 0


class RateLimiter:
    """
    Per-identifier attempt window with escalation to a timed lockout.

    State lives in process memory only: restarting the process clears every
    window and lockout. Identifiers are phone numbers, emails or login names;
    emails are matched case-insensitively.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: int = 15 * 60,
        lockout_seconds: int = 5 * 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)
        self.lockout = timedelta(seconds=lockout_seconds)
        self._clock = clock
        self._records: Dict[str, RateLimitRecord] = {}
        self._locks = KeyedLock()

    @classmethod
    def from_config(cls, config, clock: Callable[[], datetime] = utcnow) -> "RateLimiter":
        return cls(
            max_attempts=int(config.get("RATE_LIMIT_MAX_ATTEMPTS", 5)),
            window_seconds=int(config.get("RATE_LIMIT_WINDOW_SECONDS", 900)),
            lockout_seconds=int(config.get("RATE_LIMIT_LOCKOUT_SECONDS", 300)),
            clock=clock,
        )

    def check_and_record(self, identifier: str) -> RateLimitDecision:
        """
        Records one attempt and returns (allowed, retry_after_seconds).
        """
        key = normalize_identifier(identifier)
        with self._locks.hold(key):
            now = self._clock()
            row = self._records.get(key)

            if row and row.locked_until:
                if now < row.locked_until:
                    return RateLimitDecision(False, seconds_until(row.locked_until, now))
                # Lockout served: start over as a brand new identifier
                del self._records[key]
                row = None

            if not row or now >= row.window_reset_at:
                self._records[key] = RateLimitRecord(count=1, window_reset_at=now + self.window)
                return RateLimitDecision(True, 0)

            if row.count >= self.max_attempts:
                row.locked_until = now + self.lockout
                logger.info("Rate limit lockout for %s until %s", key, row.locked_until.isoformat())
                return RateLimitDecision(False, seconds_until(row.locked_until, now))

            row.count += 1
            return RateLimitDecision(True, 0)

    def reset(self, identifier: str) -> None:
        """
        Clears all state after a successful authentication.
        """
        key = normalize_identifier(identifier)
        with self._locks.hold(key):
            self._records.pop(key, None)

    def get(self, identifier: str) -> Optional[RateLimitRecord]:
        key = normalize_identifier(identifier)
        with self._locks.hold(key):
            row = self._records.get(key)
            return replace(row) if row else None

    def purge_expired(self) -> int:
        now = self._clock()
        purged = 0
        for key in list(self._records):
            with self._locks.hold(key):
                row = self._records.get(key)
                if row is None:
                    continue
                if row.locked_until and now < row.locked_until:
                    continue
                if not row.locked_until and now < row.window_reset_at:
                    continue
                del self._records[key]
                purged += 1
        if purged:
            logger.debug("Purged %d idle rate limit records", purged)
        return purged

    def __len__(self) -> int:
        return len(self._records)
