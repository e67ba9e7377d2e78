import bcrypt


class CodeHasher:
    """
    Salted bcrypt hashing for one-time codes.

    Codes are short and live for minutes, so the cost factor is configurable
    per manager (OTP_HASH_ROUNDS) instead of the login-password default.
    Codes may be given as str or raw bytes.
    """

    def __init__(self, rounds: int = 10):
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self.rounds = rounds

    @staticmethod
    def _as_bytes(code) -> bytes:
        if isinstance(code, str):
            code = code.encode("utf-8")
        if not isinstance(code, bytes) or not code:
            raise ValueError("Code must be non-empty str or bytes")
        return code

    def hash(self, code) -> str:
        return bcrypt.hashpw(self._as_bytes(code), bcrypt.gensalt(rounds=self.rounds)).decode("ascii")

    def matches(self, code, stored_hash: str) -> bool:
        """Constant-time comparison. A corrupt or foreign hash never matches."""
        if not code or not stored_hash:
            return False
        try:
            return bcrypt.checkpw(self._as_bytes(code), stored_hash.encode("ascii"))
        except ValueError:
            return False
