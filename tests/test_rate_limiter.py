"""Tests for the sliding-window rate limiter store."""

import pytest

from provider_directory.api.rate_limiter import (
    check_rate_limit,
    get_rate_limit_stats,
    reset_rate_limits,
)


@pytest.fixture(autouse=True)
def _clean_limiter():
    reset_rate_limits()
    yield
    reset_rate_limits()


class TestCheckRateLimit:
    def test_allows_up_to_limit(self):
        results = [check_rate_limit("ip:1.2.3.4", 3)[0] for _ in range(4)]
        assert results == [True, True, True, False]

    def test_remaining_counts_down(self):
        assert check_rate_limit("ip:1.2.3.4", 3)[2] == 2
        assert check_rate_limit("ip:1.2.3.4", 3)[2] == 1

    def test_keys_are_independent(self):
        check_rate_limit("ip:a", 1)
        assert check_rate_limit("ip:a", 1)[0] is False
        assert check_rate_limit("ip:b", 1)[0] is True

    def test_custom_window_reset(self):
        allowed, limit, remaining, reset = check_rate_limit("new_entries:ip:a", 3, 300)
        assert (allowed, limit, remaining) == (True, 3, 2)
        assert 0 < reset <= 300

    def test_stats(self):
        check_rate_limit("ip:a", 5)
        check_rate_limit("ip:a", 5)
        stats = get_rate_limit_stats()
        assert stats["active_keys"] == 1
        assert stats["entries"] == {"ip:a": 2}
