"""Tests for the retry decorator and provider call wrapper."""

from unittest.mock import MagicMock, patch

import pytest

from zonectl.models import ProviderError, RateLimitedError, TransientAPIError
from zonectl.retry import api_call, retry


@pytest.fixture
def sleep():
    with patch("zonectl.retry.time.sleep") as mock_sleep:
        yield mock_sleep


class TestRetry:
    def test_success_first_try(self, sleep):
        fn = MagicMock(return_value="ok")
        assert retry()(fn)() == "ok"
        sleep.assert_not_called()

    def test_retries_then_succeeds(self, sleep):
        fn = MagicMock(side_effect=[TransientAPIError("boom"), "ok"])
        fn.__qualname__ = "fn"
        assert retry(base_delay=0.5)(fn)() == "ok"
        sleep.assert_called_once_with(0.5)

    def test_gives_up(self, sleep):
        fn = MagicMock(side_effect=TransientAPIError("boom"))
        fn.__qualname__ = "fn"
        with pytest.raises(TransientAPIError):
            retry(max_attempts=3)(fn)()
        assert fn.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_other_errors_propagate(self, sleep):
        fn = MagicMock(side_effect=ProviderError("nope"))
        fn.__qualname__ = "fn"
        with pytest.raises(ProviderError):
            retry()(fn)()
        assert fn.call_count == 1

    def test_delay_is_capped(self, sleep):
        fn = MagicMock(side_effect=[TransientAPIError("x")] * 4 + ["ok"])
        fn.__qualname__ = "fn"
        retry(max_attempts=5, base_delay=10, max_delay=15)(fn)()
        assert [c.args[0] for c in sleep.call_args_list] == [10, 15, 15, 15]


class TestApiCall:
    def test_rate_limit_waits_until_budget(self, sleep):
        fn = MagicMock(side_effect=RateLimitedError("slow down"))
        fn.__qualname__ = "fn"
        with pytest.raises(RateLimitedError):
            api_call(fn)()
        # 1 + 2 + 4 + ... + 128 = 255; the next 256s wait would pass 300s
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2, 4, 8, 16, 32, 64, 128]

    def test_transient_retried_twice(self, sleep):
        fn = MagicMock(side_effect=TransientAPIError("flaky"))
        fn.__qualname__ = "fn"
        with pytest.raises(TransientAPIError):
            api_call(fn)()
        assert fn.call_count == 3
