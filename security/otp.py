"""
One-time passcode lifecycle: issue, verify, clear, sweep.

Per (identifier, purpose) a code moves NONE -> PENDING -> VERIFIED, EXPIRED
or EXHAUSTED. Terminal states count as NONE for the next issue, which always
overwrites. Only bcrypt hashes of codes are stored.
"""
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, NamedTuple, Optional

from security.errors import (
    InvalidOrExpiredError,
    RateLimitedError,
    TooManyAttemptsError,
    ValidationError,
)
from security.code_hash import CodeHasher
from security.keyed_lock import KeyedLock
from security.otp_store import MemoryOtpStore, OtpEntry, OtpStore
from utils.clock import seconds_until, utcnow
from utils.identifiers import require_otp_identifier

logger = logging.getLogger(__name__)

PURPOSE_LOGIN = "login"
PURPOSE_PASSWORD_RESET = "password-reset"
PURPOSE_EMAIL_VERIFICATION = "email-verification"
PURPOSE_PHONE_VERIFICATION = "phone-verification"

DEFAULT_TTL_SECONDS = {
    PURPOSE_LOGIN: 5 * 60,
    PURPOSE_PASSWORD_RESET: 15 * 60,
    PURPOSE_PHONE_VERIFICATION: 15 * 60,
    PURPOSE_EMAIL_VERIFICATION: 30 * 60,
}

STATE_NONE = "NONE"
STATE_PENDING = "PENDING"
STATE_VERIFIED = "VERIFIED"
STATE_EXPIRED = "EXPIRED"
STATE_EXHAUSTED = "EXHAUSTED"


class IssuedOtp(NamedTuple):
    code: str
    expires_at: datetime
    purpose: str


class OtpVerification(NamedTuple):
    verified: bool
    identifier: str
    purpose: str
    entry_id: Optional[int] = None


class OtpLifecycleManager:
    def __init__(
        self,
        store: OtpStore = None,
        code_length: int = 6,
        max_attempts: int = 5,
        ttl_seconds: Dict[str, int] = None,
        issue_max_per_window: int = 3,
        issue_window_seconds: int = 10 * 60,
        hash_rounds: int = 10,
        debug_expose_code: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        if code_length < 1:
            raise ValueError("code_length must be positive")
        self.store = store if store is not None else MemoryOtpStore()
        self.code_length = code_length
        self.max_attempts = max_attempts
        self.ttl_seconds = dict(DEFAULT_TTL_SECONDS)
        if ttl_seconds:
            self.ttl_seconds.update(ttl_seconds)
        self.issue_max_per_window = issue_max_per_window
        self.issue_window = timedelta(seconds=issue_window_seconds)
        self.hasher = CodeHasher(rounds=hash_rounds)
        self.debug_expose_code = debug_expose_code
        self._clock = clock
        self._locks = KeyedLock()
        self._code_pattern = re.compile(r"[0-9]{%d}" % code_length)

    @classmethod
    def from_config(cls, config, store: OtpStore = None,
                    clock: Callable[[], datetime] = utcnow) -> "OtpLifecycleManager":
        return cls(
            store=store,
            code_length=int(config.get("OTP_LENGTH", 6)),
            max_attempts=int(config.get("OTP_MAX_ATTEMPTS", 5)),
            ttl_seconds=config.get("OTP_TTL_SECONDS"),
            issue_max_per_window=int(config.get("OTP_ISSUE_MAX_PER_WINDOW", 3)),
            issue_window_seconds=int(config.get("OTP_ISSUE_WINDOW_SECONDS", 600)),
            hash_rounds=int(config.get("OTP_HASH_ROUNDS", 10)),
            debug_expose_code=bool(config.get("OTP_DEBUG_EXPOSE_CODE", False)),
            clock=clock,
        )

    @property
    def purposes(self):
        return tuple(self.ttl_seconds)

    def _require_purpose(self, purpose) -> str:
        if not isinstance(purpose, str) or purpose not in self.ttl_seconds:
            raise ValidationError("Unknown OTP purpose")
        return purpose

    def generate_code(self) -> str:
        """Uniform over the whole fixed-width range, leading zeros kept."""
        return f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"

    def issue(self, identifier: str, purpose: str = PURPOSE_LOGIN) -> IssuedOtp:
        """
        Creates a fresh code for (identifier, purpose) and returns it with its
        expiry. Any earlier unconsumed code for the same pair stops working.

        Raises ValidationError for a malformed identifier or unknown purpose
        and RateLimitedError once the identifier hit the issuance throttle.
        The caller delivers the returned code.
        """
        identifier = require_otp_identifier(identifier)
        purpose = self._require_purpose(purpose)

        with self._locks.hold(identifier):
            now = self._clock()

            recent = self.store.issuances_since(identifier, now - self.issue_window)
            if len(recent) >= self.issue_max_per_window:
                # the window frees a slot when the oldest counted issuance ages out
                oldest = recent[-self.issue_max_per_window]
                retry_after = seconds_until(oldest + self.issue_window, now)
                logger.info("OTP issuance throttled for %s (retry in %ds)", identifier, retry_after)
                raise RateLimitedError(retry_after)

            code = self.generate_code()
            expires_at = now + timedelta(seconds=self.ttl_seconds[purpose])
            self.store.replace_unconsumed(OtpEntry(
                identifier=identifier,
                purpose=purpose,
                secret_hash=self.hasher.hash(code),
                created_at=now,
                expires_at=expires_at,
            ))
            self.store.add_issuance(identifier, now)

        if self.debug_expose_code:
            logger.warning("DEBUG OTP for %s (%s): %s", identifier, purpose, code)
        else:
            logger.info("OTP issued for %s (%s), expires %s", identifier, purpose, expires_at.isoformat())
        return IssuedOtp(code=code, expires_at=expires_at, purpose=purpose)

    def verify(self, identifier: str, submitted_code: str, purpose: str = PURPOSE_LOGIN) -> OtpVerification:
        """
        Consumes the pending code for (identifier, purpose) when submitted_code
        matches it.

        Wrong, unknown, consumed and expired codes all raise
        InvalidOrExpiredError. Once max_attempts wrong guesses were recorded
        the code is discarded and TooManyAttemptsError is raised. Malformed
        input raises ValidationError without counting an attempt.
        """
        if not isinstance(submitted_code, str) or not self._code_pattern.fullmatch(submitted_code):
            raise ValidationError("Invalid code format")
        identifier = require_otp_identifier(identifier)
        purpose = self._require_purpose(purpose)

        with self._locks.hold(identifier):
            now = self._clock()
            entry = self.store.find_one(identifier, purpose)

            if entry is None:
                raise InvalidOrExpiredError()

            if entry.expires_at <= now:
                self.store.delete_one(entry.id)
                raise InvalidOrExpiredError()

            if entry.attempts >= self.max_attempts:
                self.store.delete_one(entry.id)
                logger.info("OTP for %s (%s) discarded after %d failed attempts",
                            identifier, purpose, entry.attempts)
                raise TooManyAttemptsError()

            if not self.hasher.matches(submitted_code, entry.secret_hash):
                self.store.update_one(entry.id, attempts=entry.attempts + 1)
                raise InvalidOrExpiredError()

            self.store.update_one(entry.id, verified=True)

        logger.info("OTP verified for %s (%s)", identifier, purpose)
        return OtpVerification(verified=True, identifier=identifier, purpose=purpose, entry_id=entry.id)

    def consume(self, verification: OtpVerification) -> bool:
        """
        Deletes the record a successful verify() matched, and only that one.
        A code issued for the same pair after the verify stays usable.
        """
        if not verification.verified or verification.entry_id is None:
            return False
        with self._locks.hold(verification.identifier):
            return self.store.delete_one(verification.entry_id)

    def clear(self, identifier: str, purpose: str = PURPOSE_LOGIN) -> int:
        identifier = require_otp_identifier(identifier)
        purpose = self._require_purpose(purpose)
        with self._locks.hold(identifier):
            return self.store.delete_many(identifier=identifier, purpose=purpose)

    def status(self, identifier: str, purpose: str = PURPOSE_LOGIN) -> str:
        """Read-only lifecycle state of the newest code for the pair."""
        identifier = require_otp_identifier(identifier)
        purpose = self._require_purpose(purpose)
        entry = self.store.find_one(identifier, purpose, verified=None)
        if entry is None:
            return STATE_NONE
        if entry.verified:
            return STATE_VERIFIED
        if entry.expires_at <= self._clock():
            return STATE_EXPIRED
        if entry.attempts >= self.max_attempts:
            return STATE_EXHAUSTED
        return STATE_PENDING

    def sweep(self) -> int:
        """
        Garbage-collects expired codes and issuance rows older than the
        throttle window. Returns the number of codes removed.
        """
        now = self._clock()
        removed = self.store.delete_many(expired_before=now)
        self.store.delete_issuances_before(now - self.issue_window)
        if removed:
            logger.info("Swept %d expired OTP records", removed)
        return removed
