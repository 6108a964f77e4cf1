import hmac
import threading
import time
from collections import deque

from powerlunch.config import Settings

ADMIN_KEY_HEADER = "x-admin-api-key"
MIN_ADMIN_KEY_LENGTH = 24


def verify_admin_key(submitted: str | None, expected: str) -> bool:
    # An unset key locks the admin surface rather than opening it.
    if not expected or not submitted:
        return False
    return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))


def enforce_production_security(settings: Settings):
    if not settings.is_production:
        return
    insecure = []
    if len(settings.admin_api_key) < MIN_ADMIN_KEY_LENGTH:
        insecure.append(f"ADMIN_API_KEY must be set (at least {MIN_ADMIN_KEY_LENGTH} characters)")
    if not settings.force_https:
        insecure.append("FORCE_HTTPS must be true")
    if list(settings.allowed_hosts) == ["*"]:
        insecure.append("ALLOWED_HOSTS must be explicit (not *)")
    if insecure:
        raise RuntimeError("Production security configuration error: " + "; ".join(insecure))


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by bucket and client.

    Keys with no events inside the longest window seen are dropped on a
    periodic sweep, so idle clients do not accumulate.
    """

    def __init__(self, clock=time.monotonic):
        self._events: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._max_period = 0
        self._last_sweep = clock()

    def _sweep(self, now: float):
        cutoff = now - self._max_period
        stale = [key for key, dq in self._events.items() if not dq or dq[-1] <= cutoff]
        for key in stale:
            del self._events[key]
        self._last_sweep = now

    def allow(self, key: str, limit: int, period_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            self._max_period = max(self._max_period, period_seconds)
            if now - self._last_sweep >= self._max_period:
                self._sweep(now)

            dq = self._events.setdefault(key, deque())
            while dq and dq[0] <= now - period_seconds:
                dq.popleft()
            if len(dq) >= limit:
                return False
            dq.append(now)
            return True

    def __len__(self) -> int:
        return len(self._events)
