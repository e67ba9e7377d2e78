"""Tests for the SQLAlchemy-backed OTP store."""

import pytest

from models.otp_issuance import OtpIssuance
from models.otp_record import OtpRecord
from security.errors import InvalidOrExpiredError, TooManyAttemptsError
from security.otp import OtpLifecycleManager
from security.otp_store import SqlAlchemyOtpStore

PHONE = "+15551234567"


@pytest.fixture()
def sql_manager(app, clock):
    return OtpLifecycleManager(store=SqlAlchemyOtpStore(), hash_rounds=4, clock=clock)


def test_issue_persists_hash_only(sql_manager):
    issued = sql_manager.issue(PHONE)

    rows = OtpRecord.query.all()
    assert len(rows) == 1
    assert rows[0].identifier == PHONE
    assert rows[0].purpose == "login"
    assert rows[0].secret_hash != issued.code
    assert rows[0].expires_at == issued.expires_at
    assert OtpIssuance.query.count() == 1


def test_reissue_replaces_unconsumed_row(sql_manager):
    sql_manager.issue(PHONE)
    second = sql_manager.issue(PHONE)

    assert OtpRecord.query.filter_by(identifier=PHONE, verified=False).count() == 1
    assert sql_manager.verify(PHONE, second.code).verified is True


def test_verify_marks_row_verified_then_clear_deletes(sql_manager):
    issued = sql_manager.issue("User@Example.com", "email-verification")
    sql_manager.verify("user@example.com", issued.code, "email-verification")

    row = OtpRecord.query.filter_by(identifier="user@example.com").one()
    assert row.verified is True

    with pytest.raises(InvalidOrExpiredError):
        sql_manager.verify("user@example.com", issued.code, "email-verification")

    assert sql_manager.clear("user@example.com", "email-verification") == 1
    assert OtpRecord.query.count() == 0


def test_attempts_are_persisted(sql_manager):
    issued = sql_manager.issue(PHONE)
    wrong = "000000" if issued.code != "000000" else "111111"

    for _ in range(5):
        with pytest.raises(InvalidOrExpiredError):
            sql_manager.verify(PHONE, wrong)
    assert OtpRecord.query.one().attempts == 5

    with pytest.raises(TooManyAttemptsError):
        sql_manager.verify(PHONE, issued.code)
    assert OtpRecord.query.count() == 0


def test_expired_row_is_deleted_on_lookup(sql_manager, clock):
    issued = sql_manager.issue(PHONE)
    clock.advance(minutes=5)

    with pytest.raises(InvalidOrExpiredError):
        sql_manager.verify(PHONE, issued.code)
    assert OtpRecord.query.count() == 0


def test_sweep_and_issuance_pruning(sql_manager, clock):
    sql_manager.issue(PHONE)
    sql_manager.issue("user@example.com", "email-verification")

    clock.advance(minutes=11)
    assert sql_manager.sweep() == 1
    assert OtpRecord.query.count() == 1
    assert OtpIssuance.query.count() == 0


def test_issuance_throttle_reads_log(sql_manager, clock):
    from security.errors import RateLimitedError

    for _ in range(3):
        sql_manager.issue(PHONE)
        clock.advance(minutes=1)

    with pytest.raises(RateLimitedError) as excinfo:
        sql_manager.issue(PHONE)
    assert excinfo.value.retry_after_seconds == 7 * 60
