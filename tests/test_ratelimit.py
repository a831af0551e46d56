# =============================================
# File: tests/test_ratelimit.py
# Purpose: Sliding-window limiter semantics
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from bidengine.utils.ratelimit import RateLimitExceeded, SlidingWindowLimiter


class _Clock:
    def __init__(self, t=1000.0):
        self.t = t

    def __call__(self):
        return self.t


def test_blocks_after_max_and_recovers_after_window():
    clock = _Clock()
    rl = SlidingWindowLimiter(max_reqs=2, window_s=10, clock=clock)

    rl.check("u1")
    rl.check("u1")
    with pytest.raises(RateLimitExceeded):
        rl.check("u1")

    clock.t += 10.5
    rl.check("u1")  # window has moved on


def test_refusal_is_a_runtime_error():
    rl = SlidingWindowLimiter(max_reqs=0, window_s=10)
    with pytest.raises(RuntimeError):
        rl.check("anyone")


def test_keys_are_independent_and_reset_clears():
    rl = SlidingWindowLimiter(max_reqs=1, window_s=60, clock=_Clock())
    rl.check("a")
    rl.check("b")
    assert rl.remaining("a") == 0
    assert rl.remaining("c") == 1

    rl.reset()
    rl.check("a")


def test_limits_read_from_env_at_call_time(monkeypatch):
    rl = SlidingWindowLimiter(clock=_Clock())
    monkeypatch.setenv("RL_MAX_REQS", "1")
    monkeypatch.setenv("RL_WINDOW_SECONDS", "60")
    rl.check("u")
    with pytest.raises(RateLimitExceeded):
        rl.check("u")

    monkeypatch.setenv("RL_MAX_REQS", "3")
    rl.check("u")
