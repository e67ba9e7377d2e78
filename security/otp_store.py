"""
Persistence backends for one-time passcodes.

Both stores hand out detached ``OtpEntry`` snapshots; callers change stored
state only through the store methods. Expiry is not filtered here: the OTP
manager checks ``expires_at`` on every read and the sweep removes leftovers.
"""
import itertools
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional

from models import db
from models.otp_issuance import OtpIssuance
from models.otp_record import OtpRecord


@dataclass
class OtpEntry:
    identifier: str
    purpose: str
    secret_hash: str
    created_at: datetime
    expires_at: datetime
    attempts: int = 0
    verified: bool = False
    id: Optional[int] = None


class OtpStore:
    """Interface shared by the memory and SQL backends."""

    def find_one(self, identifier: str, purpose: str, verified: Optional[bool] = False) -> Optional[OtpEntry]:
        """
        Newest entry for (identifier, purpose), expired or not. Only unconsumed
        entries by default; verified=None matches either.
        """
        raise NotImplementedError

    def insert(self, entry: OtpEntry) -> OtpEntry:
        raise NotImplementedError

    def replace_unconsumed(self, entry: OtpEntry) -> OtpEntry:
        """Atomically drop unconsumed entries for the pair and insert entry."""
        raise NotImplementedError

    def update_one(self, entry_id: int, **changes) -> bool:
        raise NotImplementedError

    def delete_one(self, entry_id: int) -> bool:
        raise NotImplementedError

    def delete_many(self, identifier: str = None, purpose: str = None,
                    verified: bool = None, expired_before: datetime = None) -> int:
        raise NotImplementedError

    def add_issuance(self, identifier: str, at: datetime) -> None:
        raise NotImplementedError

    def issuances_since(self, identifier: str, since: datetime) -> List[datetime]:
        """Issuance timestamps newer than since, oldest first."""
        raise NotImplementedError

    def delete_issuances_before(self, cutoff: datetime) -> int:
        raise NotImplementedError


class MemoryOtpStore(OtpStore):
    """
    In-process arena keyed by entry id. A single mutex guards the maps;
    per-identifier atomicity across several calls is the manager's job.
    """

    def __init__(self):
        self._mutex = threading.Lock()
        self._ids = itertools.count(1)
        self._entries: Dict[int, OtpEntry] = {}
        self._issuances: Dict[str, List[datetime]] = {}

    @staticmethod
    def _matches(entry: OtpEntry, identifier, purpose, verified, expired_before) -> bool:
        if identifier is not None and entry.identifier != identifier:
            return False
        if purpose is not None and entry.purpose != purpose:
            return False
        if verified is not None and entry.verified != verified:
            return False
        if expired_before is not None and entry.expires_at > expired_before:
            return False
        return True

    def find_one(self, identifier, purpose, verified=False):
        with self._mutex:
            found = [
                e for e in self._entries.values()
                if self._matches(e, identifier, purpose, verified, None)
            ]
            if not found:
                return None
            return replace(max(found, key=lambda e: (e.created_at, e.id)))

    def _insert_locked(self, entry: OtpEntry) -> OtpEntry:
        stored = replace(entry, id=next(self._ids))
        self._entries[stored.id] = stored
        return replace(stored)

    def insert(self, entry):
        with self._mutex:
            return self._insert_locked(entry)

    def replace_unconsumed(self, entry):
        with self._mutex:
            for entry_id in [
                k for k, e in self._entries.items()
                if self._matches(e, entry.identifier, entry.purpose, False, None)
            ]:
                del self._entries[entry_id]
            return self._insert_locked(entry)

    def update_one(self, entry_id, **changes):
        with self._mutex:
            entry = self._entries.get(entry_id)
            if entry is None:
                return False
            self._entries[entry_id] = replace(entry, **changes)
            return True

    def delete_one(self, entry_id):
        with self._mutex:
            return self._entries.pop(entry_id, None) is not None

    def delete_many(self, identifier=None, purpose=None, verified=None, expired_before=None):
        with self._mutex:
            doomed = [
                k for k, e in self._entries.items()
                if self._matches(e, identifier, purpose, verified, expired_before)
            ]
            for entry_id in doomed:
                del self._entries[entry_id]
            return len(doomed)

    def add_issuance(self, identifier, at):
        with self._mutex:
            self._issuances.setdefault(identifier, []).append(at)

    def issuances_since(self, identifier, since):
        with self._mutex:
            return sorted(t for t in self._issuances.get(identifier, []) if t > since)

    def delete_issuances_before(self, cutoff):
        removed = 0
        with self._mutex:
            for identifier in list(self._issuances):
                kept = [t for t in self._issuances[identifier] if t >= cutoff]
                removed += len(self._issuances[identifier]) - len(kept)
                if kept:
                    self._issuances[identifier] = kept
                else:
                    del self._issuances[identifier]
        return removed

    def __len__(self) -> int:
        return len(self._entries)


class SqlAlchemyOtpStore(OtpStore):
    """
    Backed by the otp_records / otp_issuances tables. Every method commits
    its own transaction and needs an application context.
    """

    @staticmethod
    def _to_entry(row: OtpRecord) -> OtpEntry:
        return OtpEntry(
            id=row.id,
            identifier=row.identifier,
            purpose=row.purpose,
            secret_hash=row.secret_hash,
            created_at=row.created_at,
            expires_at=row.expires_at,
            attempts=row.attempts,
            verified=row.verified,
        )

    @staticmethod
    def _to_row(entry: OtpEntry) -> OtpRecord:
        return OtpRecord(
            identifier=entry.identifier,
            purpose=entry.purpose,
            secret_hash=entry.secret_hash,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
            attempts=entry.attempts,
            verified=entry.verified,
        )

    @staticmethod
    def _filtered(identifier, purpose, verified, expired_before):
        query = OtpRecord.query
        if identifier is not None:
            query = query.filter(OtpRecord.identifier == identifier)
        if purpose is not None:
            query = query.filter(OtpRecord.purpose == purpose)
        if verified is not None:
            query = query.filter(OtpRecord.verified == verified)
        if expired_before is not None:
            query = query.filter(OtpRecord.expires_at <= expired_before)
        return query

    def find_one(self, identifier, purpose, verified=False):
        row = (
            self._filtered(identifier, purpose, verified, None)
            .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
            .first()
        )
        return self._to_entry(row) if row else None

    def insert(self, entry):
        row = self._to_row(entry)
        db.session.add(row)
        db.session.commit()
        return self._to_entry(row)

    def replace_unconsumed(self, entry):
        self._filtered(entry.identifier, entry.purpose, False, None).delete(synchronize_session=False)
        row = self._to_row(entry)
        db.session.add(row)
        db.session.commit()
        return self._to_entry(row)

    def update_one(self, entry_id, **changes):
        updated = OtpRecord.query.filter(OtpRecord.id == entry_id).update(changes, synchronize_session=False)
        db.session.commit()
        return updated > 0

    def delete_one(self, entry_id):
        deleted = OtpRecord.query.filter(OtpRecord.id == entry_id).delete(synchronize_session=False)
        db.session.commit()
        return deleted > 0

    def delete_many(self, identifier=None, purpose=None, verified=None, expired_before=None):
        deleted = self._filtered(identifier, purpose, verified, expired_before).delete(synchronize_session=False)
        db.session.commit()
        return deleted

    def add_issuance(self, identifier, at):
        db.session.add(OtpIssuance(identifier=identifier, created_at=at))
        db.session.commit()

    def issuances_since(self, identifier, since):
        rows = (
            OtpIssuance.query
            .filter(OtpIssuance.identifier == identifier, OtpIssuance.created_at > since)
            .order_by(OtpIssuance.created_at.asc())
            .all()
        )
        return [row.created_at for row in rows]

    def delete_issuances_before(self, cutoff):
        deleted = OtpIssuance.query.filter(OtpIssuance.created_at < cutoff).delete(synchronize_session=False)
        db.session.commit()
        return deleted
