"""
Unit tests for the token verification cache
"""

import pytest

from utils.token_cache import TokenVerificationCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestTokenVerificationCache:
    """Test expiry and invalidation"""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return TokenVerificationCache(ttl_seconds=10, clock=clock)

    def test_hit_within_ttl(self, cache, clock):
        cache.put('token-a', {'success': True})
        clock.now += 9.9
        assert cache.get('token-a') == {'success': True}

    def test_expires_at_ttl(self, cache, clock):
        cache.put('token-a', {'success': True})
        clock.now += 10
        assert cache.get('token-a') is None
        assert len(cache) == 0

    def test_invalidate(self, cache):
        cache.put('token-a', {'success': True})
        cache.invalidate('token-a')
        cache.invalidate('never-stored')
        assert cache.get('token-a') is None

    def test_put_purges_expired_entries(self, cache, clock):
        cache.put('old', 1)
        clock.now += 11
        cache.put('new', 2)
        assert len(cache) == 1

    def test_clear(self, cache):
        cache.put('a', 1)
        cache.put('b', 2)
        cache.clear()
        assert len(cache) == 0

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            TokenVerificationCache(ttl_seconds=0)
