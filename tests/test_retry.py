"""Tests for transient-failure retries and error sanitizing."""

import httpx
import pytest

from supremo_gateway.errors import (
    GENERIC_ERROR_MESSAGE,
    RemoteAPIError,
    sanitize_error_message,
)
from supremo_gateway.retry import RetryPolicy, is_transient_error


class Flaky:
    def __init__(self, failures):
        self.failures = list(failures)
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return value


@pytest.fixture
def delays():
    return []


@pytest.fixture
def policy(delays):
    async def sleep(delay):
        delays.append(delay)

    return RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleep)


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_recovers_from_transient_errors(self, policy, delays):
        func = Flaky([RemoteAPIError("Trello", 503), httpx.ConnectError("down")])
        assert await policy.run(func, "ok") == "ok"
        assert func.calls == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, policy):
        func = Flaky([RemoteAPIError("Trello", 429)] * 5)
        with pytest.raises(RemoteAPIError):
            await policy.run(func, "ok")
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_last_error_is_raised_unchanged(self, delays):
        async def sleep(delay):
            delays.append(delay)

        last = RemoteAPIError("Trello", 502, "bad gateway")
        func = Flaky([RemoteAPIError("Trello", 503), last])
        with pytest.raises(RemoteAPIError) as excinfo:
            await RetryPolicy(max_attempts=2, sleep=sleep).run(func, "ok")
        assert excinfo.value is last
        assert delays == [1.0]

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, delays):
        async def sleep(delay):
            delays.append(delay)

        func = Flaky([httpx.ConnectError("down")])
        with pytest.raises(httpx.ConnectError):
            await RetryPolicy(max_attempts=1, sleep=sleep).run(func, "ok")
        assert func.calls == 1
        assert delays == []

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self, policy, delays):
        func = Flaky([RemoteAPIError("Google Calendar", 404)])
        with pytest.raises(RemoteAPIError):
            await policy.run(func, "ok")
        assert func.calls == 1
        assert delays == []

    def test_delay_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=8.0)
        assert [policy.delay_for(n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 8.0]

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_transient_classification(self):
        request = httpx.Request("GET", "https://api.trello.com/1/boards")
        bad_gateway = httpx.HTTPStatusError("bad", request=request, response=httpx.Response(502, request=request))
        not_found = httpx.HTTPStatusError("nf", request=request, response=httpx.Response(404, request=request))
        assert is_transient_error(bad_gateway)
        assert not is_transient_error(not_found)
        assert is_transient_error(httpx.ReadTimeout("slow"))
        assert not is_transient_error(ValueError("bad"))


class TestSanitize:
    def test_plain_message_is_kept(self):
        assert sanitize_error_message(ValueError("Lista não encontrada")) == "Lista não encontrada"

    def test_paths_are_hidden(self):
        assert sanitize_error_message(OSError("/home/user/.env missing")) == GENERIC_ERROR_MESSAGE

    def test_credentials_are_hidden(self):
        assert sanitize_error_message(RuntimeError("bad token=abc123")) == GENERIC_ERROR_MESSAGE

    def test_long_messages_are_hidden(self):
        assert sanitize_error_message(RuntimeError("x" * 150)) == GENERIC_ERROR_MESSAGE

    def test_remote_errors_name_the_service(self):
        message = sanitize_error_message(RemoteAPIError("Trello", 500, "<html>stack</html>"))
        assert "Trello" in message and "500" in message
        assert "stack" not in message

    def test_empty(self):
        assert sanitize_error_message(None) == GENERIC_ERROR_MESSAGE
        assert sanitize_error_message(RuntimeError("")) == GENERIC_ERROR_MESSAGE
