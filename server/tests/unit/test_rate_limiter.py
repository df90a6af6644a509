"""Unit tests for the sync rate limiter."""

import pytest

from toursync.services.sync.rate_limiter import SyncRateLimiter


class FakeTime:
    """A clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 1000.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


def make_limiter(fake_time, max_calls=2, min_delay_ms=100):
    return SyncRateLimiter(
        max_calls_per_minute=max_calls,
        min_delay_ms=min_delay_ms,
        clock=fake_time.clock,
        sleep=fake_time.sleep,
    )


@pytest.mark.asyncio
async def test_throttle_waits_out_the_window(fake_time):
    """Test the limiter sleeps until the window ends once the limit is reached."""
    limiter = make_limiter(fake_time)

    for _ in range(3):
        await limiter.throttle()

    assert fake_time.sleeps == pytest.approx([0.1, 0.1, 59.8, 0.1])
    assert limiter.call_count == 1


@pytest.mark.asyncio
async def test_throttle_applies_backoff(fake_time):
    """Test pending backoff is slept before the call."""
    limiter = make_limiter(fake_time, max_calls=10)
    limiter.record_rate_limit_hit()
    limiter.record_rate_limit_hit()

    await limiter.throttle()

    assert fake_time.sleeps == pytest.approx([2, 0.1])


@pytest.mark.asyncio
async def test_new_window_resets_counts_and_backoff(fake_time):
    """Test a new window starts with no calls and no backoff."""
    limiter = make_limiter(fake_time)
    await limiter.throttle()
    limiter.record_error()

    fake_time.now += 61
    await limiter.throttle()

    assert limiter.call_count == 1
    assert limiter.current_backoff == 0
    assert fake_time.sleeps == pytest.approx([0.1, 0.1])


def test_rate_limit_backoff_doubles_to_cap(fake_time):
    """Test rate-limit backoff doubles up to five minutes and resets on success."""
    limiter = make_limiter(fake_time)
    seen = []
    for _ in range(11):
        limiter.record_rate_limit_hit()
        seen.append(limiter.current_backoff)

    assert seen[:5] == [1, 2, 4, 8, 16]
    assert seen[-1] == 300

    limiter.record_success()
    assert limiter.current_backoff == 0


def test_error_backoff_grows_linearly_to_cap(fake_time):
    """Test error backoff grows one second at a time up to thirty."""
    limiter = make_limiter(fake_time)
    for _ in range(3):
        limiter.record_error()
    assert limiter.current_backoff == 3

    for _ in range(50):
        limiter.record_error()
    assert limiter.current_backoff == 30


@pytest.mark.asyncio
async def test_stats(fake_time):
    """Test stats report usage of the current window."""
    limiter = make_limiter(fake_time, max_calls=5).set_rate_limit(30)
    await limiter.throttle()
    fake_time.now += 20

    assert limiter.stats() == {
        "calls_in_window": 1,
        "max_calls_per_minute": 30,
        "current_backoff": 0,
        "window_remaining_seconds": 40,
    }
