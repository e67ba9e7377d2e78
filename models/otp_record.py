from models.db import db
from utils.clock import utcnow


class OtpRecord(db.Model):
    __tablename__ = "otp_records"
    __table_args__ = (
        db.Index("ix_otp_records_lookup", "identifier", "purpose", "verified"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # normalized phone (E.164) or lowercased email
    identifier = db.Column(db.String(255), nullable=False, index=True)
    purpose = db.Column(db.String(32), nullable=False, default="login")

    # bcrypt hash, never the plaintext code
    secret_hash = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    attempts = db.Column(db.Integer, default=0, nullable=False)
    verified = db.Column(db.Boolean, default=False, nullable=False)
