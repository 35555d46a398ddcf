"""Tests for the retry policy."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from taskbridge.utils.retry import is_transient_error, with_retry


def status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.test/")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(code, request=request))


@pytest.mark.parametrize("code, transient", [(429, True), (503, True), (500, True), (400, False), (404, False)])
def test_is_transient_status(code, transient):
    assert is_transient_error(status_error(code)) == (transient, code)


def test_transport_errors_are_transient():
    assert is_transient_error(httpx.ConnectError("refused")) == (True, None)


def test_other_errors_are_not_transient():
    assert is_transient_error(ValueError("bad")) == (False, None)


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    operation = AsyncMock(side_effect=[status_error(503), httpx.ReadTimeout("slow"), "ok"])

    with patch("taskbridge.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await with_retry(operation, "op", max_attempts=3, initial_delay=1.0, max_delay=30.0)

    assert result == "ok"
    assert operation.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_delay_is_capped():
    operation = AsyncMock(side_effect=[status_error(503)] * 4 + ["ok"])

    with patch("taskbridge.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        await with_retry(operation, "op", max_attempts=5, initial_delay=2.0, max_delay=5.0)

    assert [call.args[0] for call in sleep.await_args_list] == [2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    operation = AsyncMock(side_effect=status_error(502))

    with patch("taskbridge.utils.retry.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(operation, "op", max_attempts=3)

    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_permanent_errors_are_not_retried():
    operation = AsyncMock(side_effect=status_error(400))

    with patch("taskbridge.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(operation, "op")

    assert operation.await_count == 1
    sleep.assert_not_awaited()
