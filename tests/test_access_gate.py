"""Unit tests for the PIN access gate

Tests cover:
- Correct / incorrect PIN handling and the failure counter
- Lockout after five consecutive failures, and expiry after thirty minutes
- Persisted state layout and clearing a stale lockout on load
"""

import threading

import pytest

from goyna.access_gate import (
    ACCESS_PIN,
    LOCKOUT_MINUTES,
    LOCKOUT_MS,
    MAX_ATTEMPTS,
    AccessState,
    load_state,
    save_state,
    verify,
    verify_later,
)
from goyna.config import ApplicationConfig
from goyna.storage import StorageError

NOW = 1_700_000_000_000
PIN = "1337"


def fail_n_times(n, state=None, now=NOW, code="0000"):
    state = state or AccessState()
    result = None
    for _ in range(n):
        result, state = verify(code, state, now=now)
    return result, state


class TestVerify:
    """verify() with a fixed PIN and an injected clock"""

    def test_correct_pin_succeeds_and_resets_counter(self):
        """
        Given: Three earlier failures
        When: The correct PIN is entered
        Then: Access is granted and the counter is back to zero
        """
        result, state = verify(PIN, AccessState(failure_count=3), now=NOW)

        assert result.success is True
        assert result.locked is False
        assert state == AccessState()

    def test_wrong_pin_increments_counter(self):
        result, state = verify("9999", AccessState(), now=NOW)

        assert result.success is False
        assert result.locked is False
        assert state.failure_count == 1
        assert result.remaining_attempts == MAX_ATTEMPTS - 1
        assert result.message == "Incorrect PIN. 4 attempts remaining."

    def test_singular_attempt_wording(self):
        result, _ = fail_n_times(4)
        assert result.message == "Incorrect PIN. 1 attempt remaining."

    def test_four_failures_do_not_lock(self):
        """
        Given: A fresh session
        When: Four wrong codes are entered
        Then: failure_count is 4 and no lockout is recorded
        """
        result, state = fail_n_times(4)

        assert state.failure_count == 4
        assert state.lockout_until is None
        assert not state.is_locked(NOW)
        assert result.locked is False

    def test_fifth_failure_sets_thirty_minute_lockout(self):
        result, state = fail_n_times(5)

        assert result.locked is True
        assert "locked" in result.message.lower()
        assert state.lockout_until == NOW + 30 * 60 * 1000
        assert LOCKOUT_MS == 30 * 60 * 1000

    def test_correct_pin_rejected_while_locked(self):
        """
        Given: "0000" submitted five times
        When: The correct PIN "1337" is submitted before expiry
        Then: It is still rejected and the lockout is unchanged
        """
        _, state = fail_n_times(5)

        result, after = verify(PIN, state, now=NOW + 60 * 1000)

        assert result.success is False
        assert result.locked is True
        assert after == state

    def test_any_attempt_rejected_until_expiry(self):
        _, state = fail_n_times(5)

        result, _ = verify(PIN, state, now=state.lockout_until - 1)

        assert result.success is False
        assert result.locked is True

    def test_lockout_expires_and_counter_resets(self):
        """
        Given: A lockout that has just passed its expiry
        When: A wrong code is entered
        Then: The counter restarts from zero instead of re-locking
        """
        _, state = fail_n_times(5)

        result, after = verify("0000", state, now=state.lockout_until)

        assert result.locked is False
        assert after.failure_count == 1
        assert after.lockout_until is None

    def test_correct_pin_after_expiry_succeeds(self):
        _, state = fail_n_times(5)

        result, after = verify(PIN, state, now=state.lockout_until + 1)

        assert result.success is True
        assert after == AccessState()

    def test_empty_code_is_a_failure(self):
        result, state = verify("", AccessState(), now=NOW)
        assert result.success is False
        assert state.failure_count == 1


class TestFixedSettings:
    def test_gate_constants(self):
        assert ACCESS_PIN == "1337"
        assert MAX_ATTEMPTS == 5
        assert LOCKOUT_MINUTES == 30

    def test_gate_settings_are_not_configurable(self):
        for name in ("ACCESS_PIN", "MAX_ATTEMPTS", "LOCKOUT_MINUTES"):
            assert not hasattr(ApplicationConfig, name)

    def test_default_secret_is_the_fixed_pin(self):
        result, _ = verify("1337", AccessState(), now=NOW)
        assert result.success is True


class TestVerifyLater:
    def test_future_resolves_to_verify_result(self):
        fut = verify_later(PIN, AccessState(), now=NOW, delay=0)

        result, state = fut.result(timeout=1)

        assert result.success is True
        assert state == AccessState()

    def test_callback_receives_future(self):
        seen = []
        done = threading.Event()

        def on_done(f):
            seen.append(f)
            done.set()

        fut = verify_later("0000", AccessState(), now=NOW, delay=0.01, callback=on_done)

        assert done.wait(2)
        result, _ = fut.result(timeout=1)
        assert result.success is False
        assert seen == [fut]


class TestPersistence:
    def test_save_and_load_roundtrip(self, storage):
        _, state = fail_n_times(5)

        save_state(storage, state)

        assert storage.get(ApplicationConfig.attempts_key()) == "5"
        assert storage.get(ApplicationConfig.lockout_key()) == str(NOW + LOCKOUT_MS)
        assert load_state(storage, now=NOW + 1) == state

    def test_saving_clear_state_removes_lockout_key(self, storage):
        save_state(storage, AccessState(failure_count=5, lockout_until=NOW))
        save_state(storage, AccessState())

        assert storage.get(ApplicationConfig.attempts_key()) == "0"
        assert ApplicationConfig.lockout_key() not in storage.keys()

    def test_load_clears_stale_lockout(self, storage):
        """
        Given: A persisted lockout already in the past
        When: The gate loads its state
        Then: Lockout and attempts are reset and written back
        """
        storage.set(ApplicationConfig.attempts_key(), "5")
        storage.set(ApplicationConfig.lockout_key(), str(NOW - 1))

        state = load_state(storage, now=NOW)

        assert state == AccessState()
        assert storage.get(ApplicationConfig.attempts_key()) == "0"
        assert storage.get(ApplicationConfig.lockout_key()) is None

    def test_load_with_nothing_stored(self, storage):
        assert load_state(storage, now=NOW) == AccessState()

    @pytest.mark.parametrize("raw", ["abc", "", "-3"])
    def test_malformed_counter_reads_as_zero(self, storage, raw):
        storage.set(ApplicationConfig.attempts_key(), raw)
        assert load_state(storage, now=NOW).failure_count == 0

    def test_save_failure_propagates(self, storage, failing_writes):
        with pytest.raises(StorageError):
            save_state(storage, AccessState(failure_count=1))
