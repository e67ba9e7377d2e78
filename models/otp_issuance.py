from models.db import db
from utils.clock import utcnow


class OtpIssuance(db.Model):
    """One row per issued code, counted by the issuance throttle."""

    __tablename__ = "otp_issuances"

    id = db.Column(db.Integer, primary_key=True)
    identifier = db.Column(db.String(255), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
