"""Tests for TokenCache."""

import threading
import time

from integrations.token_cache import TokenCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTokenCache:
    def test_fetches_once_while_fresh(self):
        calls = []

        def fetch():
            calls.append(1)
            return f"token-{len(calls)}"

        cache = TokenCache(fetch, ttl_seconds=3600, refresh_margin_seconds=300, clock=FakeClock())
        assert cache.get() == "token-1"
        assert cache.get() == "token-1"
        assert len(calls) == 1

    def test_refreshes_inside_margin(self):
        clock = FakeClock()
        tokens = iter(["a", "b"])
        cache = TokenCache(lambda: next(tokens), ttl_seconds=3600, refresh_margin_seconds=300, clock=clock)

        assert cache.get() == "a"
        clock.now += 3299
        assert cache.get() == "a"
        clock.now += 1
        assert cache.get() == "b"

    def test_fetch_reported_ttl(self):
        clock = FakeClock()
        tokens = iter([("short", 60), ("next", 60)])
        cache = TokenCache(lambda: next(tokens), ttl_seconds=3600, refresh_margin_seconds=10, clock=clock)

        assert cache.get() == "short"
        clock.now += 51
        assert cache.get() == "next"

    def test_invalidate(self):
        tokens = iter(["a", "b"])
        cache = TokenCache(lambda: next(tokens), clock=FakeClock())
        assert cache.get() == "a"
        cache.invalidate()
        assert cache.get() == "b"

    def test_concurrent_callers_share_one_login(self):
        calls = []

        def slow_fetch():
            calls.append(1)
            time.sleep(0.05)
            return "shared"

        cache = TokenCache(slow_fetch)
        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get())) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == ["shared"] * 8
        assert len(calls) == 1
