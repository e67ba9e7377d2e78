from flask import Blueprint, request, jsonify, current_app

from security.errors import AuthCoreError, RateLimitedError
from security.otp import PURPOSE_LOGIN
from utils.audit import log_event
from utils.identifiers import normalize_identifier


otp_bp = Blueprint("otp", __name__, url_prefix="/auth/otp")


def _rate_limiter():
    return current_app.extensions["rate_limiter"]


def _otp_manager():
    return current_app.extensions["otp_manager"]


def _read_request():
    data = request.get_json(silent=True) or {}
    identifier = data.get("identifier") or data.get("phone") or data.get("email") or ""
    if not isinstance(identifier, str):
        identifier = ""
    purpose = data.get("purpose") or PURPOSE_LOGIN
    return data, identifier.strip(), purpose


@otp_bp.post("/send")
def send():
    _, identifier, purpose = _read_request()
    if not identifier:
        return jsonify(error="Phone number or email is required"), 400

    allowed, retry_after = _rate_limiter().check_and_record(identifier)
    if not allowed:
        log_event(
            "OTP_RATE_LIMITED",
            identifier=normalize_identifier(identifier),
            metadata={"purpose": purpose, "retry_after": retry_after},
        )
        return jsonify(error="Too many requests. Slow down.", retry_after_seconds=retry_after), 429

    try:
        issued = _otp_manager().issue(identifier, purpose)
    except RateLimitedError as exc:
        log_event(
            "OTP_ISSUE_THROTTLED",
            identifier=normalize_identifier(identifier),
            metadata={"purpose": purpose, "retry_after": exc.retry_after_seconds},
        )
        return jsonify(exc.to_dict()), exc.status_code
    except AuthCoreError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    log_event(
        "OTP_ISSUED",
        identifier=normalize_identifier(identifier),
        metadata={"purpose": issued.purpose, "expires_at": issued.expires_at.isoformat()},
    )

    body = dict(
        message="Verification code sent",
        purpose=issued.purpose,
        expires_at=issued.expires_at.isoformat() + "Z",
    )
    # Local development only, never enabled in production
    if _otp_manager().debug_expose_code:
        body["otp"] = issued.code
    return jsonify(body), 200


@otp_bp.post("/verify")
def verify():
    data, identifier, purpose = _read_request()
    code = data.get("code") or data.get("otp") or ""
    if not identifier or not code:
        return jsonify(error="Identifier and code are required"), 400

    manager = _otp_manager()
    try:
        result = manager.verify(identifier, code, purpose)
    except AuthCoreError as exc:
        if exc.status_code != 400:
            log_event(
                "OTP_VERIFY_FAIL",
                identifier=normalize_identifier(identifier),
                metadata={"purpose": purpose, "reason": type(exc).__name__},
            )
        return jsonify(exc.to_dict()), exc.status_code

    # The code has served its purpose: drop it and forgive earlier failures
    manager.consume(result)
    _rate_limiter().reset(result.identifier)

    log_event("OTP_VERIFIED", identifier=result.identifier, metadata={"purpose": result.purpose})
    return jsonify(verified=True, purpose=result.purpose), 200
