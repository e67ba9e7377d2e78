"""Tests for the OTP HTTP endpoints."""

import json
import logging

from models.audit_log import AuditLog


def _send(client, identifier="+15551234567", **extra):
    return client.post("/auth/otp/send", json={"identifier": identifier, **extra})


def _verify(client, code, identifier="+15551234567", **extra):
    return client.post("/auth/otp/verify", json={"identifier": identifier, "code": code, **extra})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["Cache-Control"] == "no-store"


def test_send_hides_code_by_default(client):
    resp = _send(client)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["purpose"] == "login"
    assert body["expires_at"].endswith("Z")
    assert "otp" not in body


def test_send_requires_identifier(client):
    resp = client.post("/auth/otp/send", json={})
    assert resp.status_code == 400


def test_send_rejects_bad_identifier(client):
    resp = _send(client, identifier="not a phone")
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_send_rejects_unknown_purpose(client):
    resp = _send(client, purpose="mfa")
    assert resp.status_code == 400


def test_send_then_verify_in_debug_mode(debug_client):
    code = _send(debug_client).get_json()["otp"]
    assert len(code) == 6

    resp = _verify(debug_client, code)
    assert resp.status_code == 200
    assert resp.get_json() == {"verified": True, "purpose": "login"}

    # consumed: replay fails
    resp = _verify(debug_client, code)
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid or expired code"


def test_debug_flag_comes_from_the_manager(app, client):
    # flipping app.config after startup does not expose codes
    app.config["OTP_DEBUG_EXPOSE_CODE"] = True
    assert "otp" not in _send(client).get_json()


def test_verify_success_resets_rate_limiter(debug_app, debug_client):
    limiter = debug_app.extensions["rate_limiter"]

    code = _send(debug_client).get_json()["otp"]
    assert limiter.get("+15551234567").count == 1

    _verify(debug_client, code)
    assert limiter.get("+15551234567") is None
    assert debug_app.extensions["otp_manager"].status("+15551234567") == "NONE"


def test_verify_keeps_code_issued_after_it(debug_app, debug_client, monkeypatch):
    manager = debug_app.extensions["otp_manager"]
    first = _send(debug_client).get_json()["otp"]
    resent = {}
    verify = manager.verify

    def verify_then_resend(*args, **kwargs):
        result = verify(*args, **kwargs)
        # another /send for the same phone lands before the route consumes
        resent["code"] = manager.issue("+15551234567").code
        return result

    monkeypatch.setattr(manager, "verify", verify_then_resend)
    assert _verify(debug_client, first).status_code == 200
    monkeypatch.setattr(manager, "verify", verify)

    assert manager.status("+15551234567") == "PENDING"
    assert _verify(debug_client, resent["code"]).status_code == 200


def test_wrong_code_is_401(debug_client):
    code = _send(debug_client).get_json()["otp"]
    wrong = "000000" if code != "000000" else "111111"

    resp = _verify(debug_client, wrong)
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid or expired code"}


def test_malformed_code_is_400(client):
    _send(client)
    resp = _verify(client, "12ab56")
    assert resp.status_code == 400


def test_verify_requires_fields(client):
    assert client.post("/auth/otp/verify", json={"identifier": "+15551234567"}).status_code == 400


def test_issuance_throttle_returns_retry_after(client):
    for _ in range(3):
        assert _send(client).status_code == 200

    resp = _send(client)
    assert resp.status_code == 429
    body = resp.get_json()
    assert 0 < body["retry_after_seconds"] <= 600


def test_rate_limiter_lockout_on_send(client):
    # invalid identifiers still count against the limiter
    for _ in range(5):
        assert _send(client, identifier="someone").status_code == 400

    resp = _send(client, identifier="someone")
    assert resp.status_code == 429
    assert resp.get_json()["retry_after_seconds"] == 300


def test_oversized_identifier_is_truncated_in_audit_log(client):
    junk = "x" * 300
    for _ in range(5):
        _send(client, identifier=junk)
    assert _send(client, identifier=junk).status_code == 429

    row = AuditLog.query.filter_by(action="OTP_RATE_LIMITED").one()
    assert row.identifier == junk[:255]


def test_audit_log_never_contains_code(debug_client):
    code = _send(debug_client).get_json()["otp"]
    _verify(debug_client, "000000" if code != "000000" else "111111")
    _verify(debug_client, code)

    actions = [row.action for row in AuditLog.query.order_by(AuditLog.id).all()]
    assert actions == ["OTP_ISSUED", "OTP_VERIFY_FAIL", "OTP_VERIFIED"]

    for row in AuditLog.query.all():
        assert row.identifier == "+15551234567"
        assert code not in (row.metadata_json or "")

    fail = AuditLog.query.filter_by(action="OTP_VERIFY_FAIL").one()
    assert json.loads(fail.metadata_json)["reason"] == "InvalidOrExpiredError"


def test_code_is_not_logged_by_default(app, client, caplog, monkeypatch):
    caplog.set_level(logging.DEBUG, logger="security.otp")
    monkeypatch.setattr(app.extensions["otp_manager"], "generate_code", lambda: "042917")
    assert _send(client).status_code == 200

    assert "OTP issued for +15551234567 (login)" in caplog.text
    assert "042917" not in caplog.text
    assert all(r.levelno < logging.WARNING for r in caplog.records if r.name == "security.otp")


def test_code_is_logged_at_warning_in_debug_mode(debug_client, caplog):
    caplog.set_level(logging.INFO, logger="security.otp")
    code = _send(debug_client).get_json()["otp"]

    debug_lines = [r for r in caplog.records if r.name == "security.otp" and code in r.getMessage()]
    assert len(debug_lines) == 1
    assert debug_lines[0].levelno == logging.WARNING


def test_legacy_phone_field_is_accepted(debug_client):
    code = debug_client.post("/auth/otp/send", json={"phone": "+15551234567"}).get_json()["otp"]
    resp = debug_client.post("/auth/otp/verify", json={"phone": "+15551234567", "otp": code})
    assert resp.status_code == 200


def test_spaced_phone_shares_the_canonical_key(debug_client):
    code = _send(debug_client, identifier="+1 555 123 4567").get_json()["otp"]
    assert _verify(debug_client, code, identifier="+15551234567").status_code == 200
