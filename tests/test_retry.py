"""Tests for the bounded retry wrapper."""

import pytest

from cancellation import CancellationToken
from errors import FatalCallError, PipelineCancelledError, TransientCallError
from retry import get_delay_ms, invoke_with_retry, is_retry_exempt


class Flaky:
    """Fails a fixed number of times, then returns a value."""

    def __init__(self, failures, error_factory=lambda: TransientCallError("timeout"), value="ok"):
        self.failures = failures
        self.error_factory = error_factory
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return self.value


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class TestRetryDelays:

    def test_exponential_delays(self):
        assert [get_delay_ms(k, 1000) for k in (1, 2, 3)] == [1000, 2000, 4000]

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts(self):
        fn = Flaky(failures=2)
        sleep = RecordingSleep()
        await invoke_with_retry(fn, max_retries=2, base_delay_ms=1000, sleep=sleep)
        assert sleep.delays == [1.0, 2.0]


class TestInvokeWithRetry:

    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(self):
        """Two failures with max_retries=2 still return the value after 3 calls."""
        fn = Flaky(failures=2, value="translated")
        result = await invoke_with_retry(fn, max_retries=2, base_delay_ms=0)
        assert result == "translated"
        assert fn.calls == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error_after_exhaustion(self):
        errors = []

        def make_error():
            errors.append(TransientCallError(f"timeout {len(errors)}"))
            return errors[-1]

        fn = Flaky(failures=10, error_factory=make_error)
        with pytest.raises(TransientCallError) as exc_info:
            await invoke_with_retry(fn, max_retries=2, base_delay_ms=0)
        assert fn.calls == 3
        assert exc_info.value is errors[-1]

    @pytest.mark.asyncio
    async def test_cancelled_message_is_not_retried(self):
        fn = Flaky(failures=5, error_factory=lambda: RuntimeError("Request was cancelled"))
        with pytest.raises(RuntimeError):
            await invoke_with_retry(fn, max_retries=2, base_delay_ms=0)
        assert fn.calls == 1

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self):
        fn = Flaky(failures=5, error_factory=lambda: FatalCallError("invalid api key", 401))
        with pytest.raises(FatalCallError):
            await invoke_with_retry(fn, max_retries=2, base_delay_ms=0)
        assert fn.calls == 1

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self):
        fn = Flaky(failures=1)
        with pytest.raises(TransientCallError):
            await invoke_with_retry(fn, max_retries=0, base_delay_ms=0)
        assert fn.calls == 1


class TestRetryCancellation:

    @pytest.mark.asyncio
    async def test_no_retry_once_token_fires(self):
        """A call that fails after the token fired is not attempted again."""
        token = CancellationToken()
        calls = []

        async def cancel_then_fail():
            calls.append(1)
            token.cancel()
            raise TransientCallError("timeout")

        sleep = RecordingSleep()
        with pytest.raises(PipelineCancelledError):
            await invoke_with_retry(
                cancel_then_fail, max_retries=2, base_delay_ms=1000, sleep=sleep, cancellation=token
            )
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_retry(self):
        token = CancellationToken()
        fn = Flaky(failures=1)

        async def cancelling_sleep(seconds):
            token.cancel()

        with pytest.raises(PipelineCancelledError):
            await invoke_with_retry(
                fn, max_retries=2, base_delay_ms=1000, sleep=cancelling_sleep, cancellation=token
            )
        assert fn.calls == 1

    @pytest.mark.asyncio
    async def test_pre_cancelled_token_makes_no_call(self):
        token = CancellationToken()
        token.cancel()
        fn = Flaky(failures=0)
        with pytest.raises(PipelineCancelledError):
            await invoke_with_retry(fn, cancellation=token)
        assert fn.calls == 0


class TestRetryExemption:

    @pytest.mark.parametrize("error", [
        FatalCallError("bad key"),
        PipelineCancelledError(),
        RuntimeError("You exceeded your current quota"),
        RuntimeError("The operation was aborted"),
        RuntimeError("request canceled"),
    ])
    def test_exempt(self, error):
        assert is_retry_exempt(error)

    @pytest.mark.parametrize("error", [
        TransientCallError("Service unavailable", 503),
        ConnectionError("reset by peer"),
    ])
    def test_retryable(self, error):
        assert not is_retry_exempt(error)
