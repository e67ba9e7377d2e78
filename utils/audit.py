import json
from flask import has_request_context, request
from models import db
from models.audit_log import AuditLog


def _client_ip():
    return request.headers.get("X-Forwarded-For", request.remote_addr)


def log_event(action: str, identifier=None, metadata=None):
    """
    Persists one security event. Never pass plaintext codes in metadata.
    """
    ip = None
    user_agent = None
    if has_request_context():
        ip = _client_ip()
        user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        action=action,
        identifier=identifier[:255] if identifier else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
