"""PIN gate with a consecutive-failure counter and a timed lockout.

verify() is pure: it takes the current AccessState and returns the next one.
Persisting that state is the caller's job (load_state/save_state).
"""

import hmac
import logging
from concurrent.futures import Future
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from .config import ApplicationConfig
from .storage import LocalStorage
from .utils import now_ms, run_deferred, to_int

logger = logging.getLogger(__name__)

ACCESS_PIN = "1337"
MAX_ATTEMPTS = 5
LOCKOUT_MINUTES = 30
LOCKOUT_MS = LOCKOUT_MINUTES * 60 * 1000
LOCKED_MESSAGE = (
    f"Too many failed attempts. Account is locked for {LOCKOUT_MINUTES} minutes."
)


@dataclass(frozen=True)
class AccessState:
    failure_count: int = 0
    lockout_until: Optional[int] = None  # epoch ms

    def is_locked(self, now: int) -> bool:
        return self.lockout_until is not None and now < self.lockout_until

    def expired(self, now: int) -> bool:
        return self.lockout_until is not None and now >= self.lockout_until

    @property
    def remaining_attempts(self) -> int:
        return max(0, MAX_ATTEMPTS - self.failure_count)


@dataclass(frozen=True)
class GateResult:
    success: bool
    locked: bool
    remaining_attempts: int
    message: str


def _attempts_text(n: int) -> str:
    return f"{n} {'attempt' if n == 1 else 'attempts'} remaining."


def clear_expired(state: AccessState, now: int) -> AccessState:
    """Drop a lockout whose expiry has passed and reset the counter."""
    if state.expired(now):
        return AccessState()
    return state


def verify(code: str, state: AccessState, now: Optional[int] = None,
           secret: Optional[str] = None) -> Tuple[GateResult, AccessState]:
    now = now_ms() if now is None else now
    secret = ACCESS_PIN if secret is None else secret
    state = clear_expired(state, now)

    if state.is_locked(now):
        return GateResult(False, True, 0, LOCKED_MESSAGE), state

    if hmac.compare_digest(str(code or "").encode("utf-8"), secret.encode("utf-8")):
        return GateResult(True, False, MAX_ATTEMPTS, "Authentication successful"), AccessState()

    count = state.failure_count + 1
    if count >= MAX_ATTEMPTS:
        new_state = AccessState(failure_count=count, lockout_until=now + LOCKOUT_MS)
        logger.warning("Access gate locked until %s after %d failed attempts", new_state.lockout_until, count)
        return GateResult(False, True, 0, LOCKED_MESSAGE), new_state

    new_state = replace(state, failure_count=count)
    return GateResult(False, False, new_state.remaining_attempts,
                      f"Incorrect PIN. {_attempts_text(new_state.remaining_attempts)}"), new_state


def verify_later(code: str, state: AccessState, now: Optional[int] = None,
                 delay: Optional[float] = None,
                 callback: Optional[Callable[[Future], None]] = None) -> Future:
    """verify() after the fixed UI delay; the future resolves to (GateResult, AccessState)."""
    delay = ApplicationConfig.VERIFY_DELAY_SECONDS if delay is None else delay
    return run_deferred(delay, verify, code, state, now, callback=callback)


def load_state(storage: LocalStorage, now: Optional[int] = None) -> AccessState:
    """
    Read the persisted counter/lockout. A lockout already in the past is cleared
    (and the reset written back) before anything else sees the state.
    """
    now = now_ms() if now is None else now
    count = max(0, to_int(storage.get(ApplicationConfig.attempts_key()), 0))
    raw_lockout = storage.get(ApplicationConfig.lockout_key())
    lockout = to_int(raw_lockout, 0) or None
    state = AccessState(failure_count=count, lockout_until=lockout)
    if state.expired(now):
        logger.info("Lockout expired, resetting failed attempts")
        state = AccessState()
        save_state(storage, state)
    return state


def save_state(storage: LocalStorage, state: AccessState) -> None:
    storage.set(ApplicationConfig.attempts_key(), str(state.failure_count))
    if state.lockout_until is None:
        storage.remove(ApplicationConfig.lockout_key())
    else:
        storage.set(ApplicationConfig.lockout_key(), str(state.lockout_until))
