"""
Tests for retry pacing, cancellation tokens and periodic sweepers.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-BO-N-01 | attempt 1..3, no jitter | Equivalence – normal | base * attempt | Linear |
| TC-BO-N-02 | With jitter | Equivalence – normal | Within [base*n, base*n+0.1] | Jitter |
| TC-BO-A-01 | attempt 0 | Abnormal – invalid | ValueError | |
| TC-BO-A-02 | Negative base delay | Abnormal – invalid | ValueError | |
| TC-WD-N-01 | (0.5, 1.5) | Equivalence – normal | Within bounds | Window delay |
| TC-WD-B-01 | (0, 0) | Boundary – zero | 0.0 | |
| TC-WD-A-01 | min > max | Abnormal – invalid | ValueError | |
| TC-CT-N-01 | Fresh token | Equivalence – normal | Not cancelled | |
| TC-CT-N-02 | cancel(reason) | Equivalence – normal | raise_if_cancelled raises with reason | |
| TC-CT-B-01 | cancel twice | Boundary – repeat | First reason kept | |
| TC-CT-N-03 | is_cancelled(None) | Equivalence – normal | False | |
| TC-SW-N-01 | Sync callback | Equivalence – normal | Count returned | run_once |
| TC-SW-N-02 | Async callback | Equivalence – normal | Count returned | run_once |
| TC-SW-N-03 | start then stop | Equivalence – normal | Task cancelled, not running | Lifecycle |
| TC-SW-A-01 | interval 0 | Abnormal – invalid | ValueError | |
"""

import asyncio

import pytest

pytestmark = pytest.mark.unit

from crawlkit.utils.backoff import RetryDelayConfig, calculate_retry_delay, calculate_window_delay
from crawlkit.utils.cancellation import CancellationToken, is_cancelled
from crawlkit.utils.errors import AcquisitionCancelledError
from crawlkit.utils.sweeper import PeriodicSweeper


class TestRetryDelay:
    """Tests for calculate_retry_delay()."""

    @pytest.mark.parametrize(("attempt", "expected"), [(1, 2.0), (2, 4.0), (3, 6.0)])
    def test_linear_without_jitter(self, attempt, expected):
        """Delay grows linearly with the attempt number (TC-BO-N-01)."""
        config = RetryDelayConfig(base_delay=2.0)
        assert calculate_retry_delay(attempt, config, add_jitter=False) == expected

    def test_jitter_bounds(self):
        """Jitter adds at most jitter_max (TC-BO-N-02)."""
        config = RetryDelayConfig(base_delay=1.0, jitter_max=0.1)
        for _ in range(50):
            delay = calculate_retry_delay(2, config)
            assert 2.0 <= delay <= 2.1

    def test_attempt_zero_rejected(self):
        """Attempts are 1-indexed (TC-BO-A-01)."""
        with pytest.raises(ValueError, match="attempt"):
            calculate_retry_delay(0)

    def test_negative_base_rejected(self):
        """Negative delays are invalid (TC-BO-A-02)."""
        with pytest.raises(ValueError, match="base_delay"):
            RetryDelayConfig(base_delay=-1.0)


class TestWindowDelay:
    """Tests for calculate_window_delay()."""

    def test_within_bounds(self):
        """Delay stays in [min, max] (TC-WD-N-01)."""
        for _ in range(50):
            assert 0.5 <= calculate_window_delay(0.5, 1.5) <= 1.5

    def test_zero_range(self):
        """A zero range gives zero (TC-WD-B-01)."""
        assert calculate_window_delay(0.0, 0.0) == 0.0

    def test_inverted_range_rejected(self):
        """min above max is rejected (TC-WD-A-01)."""
        with pytest.raises(ValueError):
            calculate_window_delay(2.0, 1.0)


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_fresh_token(self):
        """A new token is not cancelled (TC-CT-N-01)."""
        token = CancellationToken()
        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel_raises_with_reason(self):
        """After cancel(), raise_if_cancelled raises CANCELLED (TC-CT-N-02)."""
        # Given
        token = CancellationToken()

        # When
        token.cancel("user abort")

        # Then
        with pytest.raises(AcquisitionCancelledError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.details == {"reason": "user abort"}

    def test_second_cancel_keeps_first_reason(self):
        """Cancelling twice does not overwrite the reason (TC-CT-B-01)."""
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    def test_is_cancelled_helper(self):
        """is_cancelled treats None as not cancelled (TC-CT-N-03)."""
        token = CancellationToken()
        assert is_cancelled(None) is False
        assert is_cancelled(token) is False
        token.cancel()
        assert is_cancelled(token) is True

    async def test_wait_returns_after_cancel(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_soon(token.cancel)
        await asyncio.wait_for(token.wait(), timeout=1.0)
        assert token.cancelled is True


class TestPeriodicSweeper:
    """Tests for PeriodicSweeper."""

    async def test_run_once_sync_callback(self):
        """Sync callbacks are called directly (TC-SW-N-01)."""
        sweeper = PeriodicSweeper("test", 10.0, lambda: 3)
        assert await sweeper.run_once() == 3

    async def test_run_once_async_callback(self):
        """Async callbacks are awaited (TC-SW-N-02)."""

        async def callback() -> int:
            return 2

        sweeper = PeriodicSweeper("test", 10.0, callback)
        assert await sweeper.run_once() == 2

    async def test_start_and_stop(self):
        """The loop runs until stop() cancels it (TC-SW-N-03)."""
        # Given: a fast sweeper counting its runs
        runs = []
        sweeper = PeriodicSweeper("test", 0.01, lambda: runs.append(1))

        # When
        sweeper.start()
        sweeper.start()  # second start is a no-op
        await asyncio.sleep(0.05)
        await sweeper.stop()

        # Then
        assert sweeper.running is False
        assert len(runs) >= 1
        count = len(runs)
        await asyncio.sleep(0.03)
        assert len(runs) == count

    def test_invalid_interval(self):
        """Non-positive intervals are rejected (TC-SW-A-01)."""
        with pytest.raises(ValueError, match="interval"):
            PeriodicSweeper("test", 0, lambda: 0)
