import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to this file as otpguard.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "otpguard.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Per-identifier rate limiting (login and OTP send)
    RATE_LIMIT_MAX_ATTEMPTS = int(os.getenv("RATE_LIMIT_MAX_ATTEMPTS", "5"))
    RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))    # 15 minutes
    RATE_LIMIT_LOCKOUT_SECONDS = int(os.getenv("RATE_LIMIT_LOCKOUT_SECONDS", "300"))  # 5 minutes

    # One-time passcodes
    OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))
    OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))
    OTP_TTL_SECONDS = {
        "login": int(os.getenv("OTP_TTL_LOGIN_SECONDS", "300")),
        "password-reset": int(os.getenv("OTP_TTL_PASSWORD_RESET_SECONDS", "900")),
        "phone-verification": int(os.getenv("OTP_TTL_PHONE_VERIFICATION_SECONDS", "900")),
        "email-verification": int(os.getenv("OTP_TTL_EMAIL_VERIFICATION_SECONDS", "1800")),
    }
    OTP_HASH_ROUNDS = int(os.getenv("OTP_HASH_ROUNDS", "10"))

    # Issuance throttle: protects the recipient's SMS/email quota
    OTP_ISSUE_MAX_PER_WINDOW = int(os.getenv("OTP_ISSUE_MAX_PER_WINDOW", "3"))
    OTP_ISSUE_WINDOW_SECONDS = int(os.getenv("OTP_ISSUE_WINDOW_SECONDS", "600"))  # 10 minutes

    # "sql" or "memory"
    OTP_STORE = os.getenv("OTP_STORE", "sql")

    # 0 disables the background sweeper
    OTP_SWEEP_INTERVAL_SECONDS = int(os.getenv("OTP_SWEEP_INTERVAL_SECONDS", "300"))

    # Local development only: returns the plaintext code in the send response
    OTP_DEBUG_EXPOSE_CODE = _env_bool("OTP_DEBUG_EXPOSE_CODE")

    # Basic app settings
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    OTP_HASH_ROUNDS = 4
    OTP_STORE = "sql"
    OTP_SWEEP_INTERVAL_SECONDS = 0
    OTP_DEBUG_EXPOSE_CODE = False
