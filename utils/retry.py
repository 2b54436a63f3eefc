"""Bounded exponential backoff for store writes."""
import time
import logging

logger = logging.getLogger("tokenhealth.retry")


class PersistenceError(Exception):
    """A store operation still failed after the last retry."""
    def __init__(self, message, attempts=None, last_error=None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class RetryPolicy:
    def __init__(self, attempts=4, base_delay=0.5, max_delay=8.0, sleep=time.sleep):
        self.attempts = max(1, int(attempts))
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.sleep = sleep

    @classmethod
    def from_config(cls, config):
        cfg = (config or {}).get("persistence", {})
        return cls(
            attempts=cfg.get("retry_attempts", 4),
            base_delay=cfg.get("retry_base_delay", 0.5),
            max_delay=cfg.get("retry_max_delay", 8.0),
        )

    def delay_for(self, attempt):
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def call(self, func, *args, description="store write", **kwargs):
        """Call func, retrying on any exception. Raises PersistenceError when exhausted."""
        last_error = None
        for attempt in range(self.attempts):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                last_error = e
                if attempt + 1 < self.attempts:
                    wait = self.delay_for(attempt)
                    logger.warning(
                        f"{description} failed: {e} (attempt {attempt + 1}/{self.attempts}), "
                        f"retrying in {wait:.1f}s"
                    )
                    self.sleep(wait)
        raise PersistenceError(
            f"{description} failed after {self.attempts} attempts: {last_error}",
            attempts=self.attempts,
            last_error=last_error,
        )
