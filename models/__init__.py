from .db import db
from .otp_record import OtpRecord
from .otp_issuance import OtpIssuance
from .audit_log import AuditLog
