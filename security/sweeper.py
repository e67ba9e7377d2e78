import logging
import threading

logger = logging.getLogger(__name__)


class Sweeper:
    """
    Daemon thread that periodically drops expired OTP records and idle
    rate-limit entries. Correctness never depends on it running.
    """

    def __init__(self, app, otp_manager, rate_limiter, *, interval: float, name: str = "otp-sweeper"):
        self._app = app
        self._otp_manager = otp_manager
        self._rate_limiter = rate_limiter
        self._interval = interval
        self._name = name
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()
        logger.info("%s started (every %ds)", self._name, self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is not None:
            self._stop.set()
            self._thread.join(timeout)
            self._thread = None
            logger.info("%s stopped", self._name)

    def run_once(self) -> tuple[int, int]:
        """
        Returns (otp_records_removed, rate_limit_records_removed).
        """
        with self._app.app_context():
            otps = self._otp_manager.sweep()
        limits = self._rate_limiter.purge_expired()
        return otps, limits

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("%s tick failed, will retry", self._name)
