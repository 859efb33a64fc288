"""Tests for rate limit bookkeeping."""

import threading
import unittest

from requests.structures import CaseInsensitiveDict

from relaycord._rate_limit import (
    RateLimitBucket,
    RateLimitHeaders,
    RateLimitState,
    derive_bucket_key,
)
from relaycord._utils import Clock


class FakeClock(Clock):
    """Clock that advances only when slept on."""

    def __init__(self, start: float = 500.0):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


class RefreshingClock(FakeClock):
    """FakeClock that runs a callback at the start of its first sleep."""

    def __init__(self, start: float = 500.0):
        super().__init__(start)
        self.on_first_sleep = None

    def sleep(self, seconds: float) -> None:
        callback, self.on_first_sleep = self.on_first_sleep, None
        if callback is not None:
            callback()
        super().sleep(seconds)


class TestDeriveBucketKey(unittest.TestCase):
    """Tests for derive_bucket_key."""

    def test_routes_differing_only_by_snowflake_share_a_key(self):
        """Should collapse 17, 18 and 19 digit ids into the same key."""
        routes = [
            "channels/12345678901234567/messages",
            "channels/123456789012345678/messages",
            "channels/1234567890123456789/messages",
        ]

        keys = {derive_bucket_key("POST", route) for route in routes}

        self.assertEqual(keys, {"POST:channels/:id/messages"})

    def test_every_snowflake_segment_is_replaced(self):
        """Should template all snowflake segments of the path."""
        key = derive_bucket_key("PATCH", "channels/111111111111111111/messages/222222222222222222")

        self.assertEqual(key, "PATCH:channels/:id/messages/:id")

    def test_route_without_snowflakes_maps_to_itself(self):
        """Should leave routes without long numeric segments unchanged."""
        for _ in range(2):
            self.assertEqual(derive_bucket_key("GET", "gateway/bot"), "GET:gateway/bot")

    def test_short_and_long_numbers_are_kept(self):
        """Should only template 17-19 digit segments."""
        self.assertEqual(derive_bucket_key("GET", "items/1234567890123456"), "GET:items/1234567890123456")
        self.assertEqual(derive_bucket_key("GET", "items/12345678901234567890"), "GET:items/12345678901234567890")

    def test_embedded_snowflake_is_replaced(self):
        """Should template snowflakes inside a segment, such as custom emoji names."""
        first = derive_bucket_key("PUT", "channels/111111111111111111/messages/222222222222222222/reactions/blob:333333333333333333/@me")
        second = derive_bucket_key("PUT", "channels/444444444444444444/messages/555555555555555555/reactions/blob:666666666666666666/@me")

        self.assertEqual(first, second)
        self.assertEqual(first, "PUT:channels/:id/messages/:id/reactions/blob::id/@me")

    def test_different_methods_have_different_keys(self):
        """Should keep the method in the key."""
        self.assertNotEqual(
            derive_bucket_key("GET", "channels/123456789012345678"),
            derive_bucket_key("DELETE", "channels/123456789012345678"),
        )

    def test_method_is_normalized(self):
        """Should upper-case the method and default to GET."""
        self.assertEqual(derive_bucket_key("post", "a"), "POST:a")
        self.assertEqual(derive_bucket_key("", "a"), "GET:a")

    def test_query_string_is_kept(self):
        """Should keep the query string unchanged."""
        key = derive_bucket_key("GET", "guilds/123456789012345678/members?limit=100")

        self.assertEqual(key, "GET:guilds/:id/members?limit=100")

    def test_query_snowflakes_are_replaced(self):
        """Should collapse pagination cursors that carry a snowflake."""
        first = derive_bucket_key("GET", "guilds/123456789012345678/members?after=111111111111111111&limit=100")
        second = derive_bucket_key("GET", "guilds/123456789012345678/members?after=222222222222222222&limit=100")

        self.assertEqual(first, second)
        self.assertEqual(first, "GET:guilds/:id/members?after=:id&limit=100")

    def test_malformed_routes_do_not_raise(self):
        """Should pass odd input through instead of raising."""
        self.assertEqual(derive_bucket_key("GET", ""), "GET:")
        self.assertEqual(derive_bucket_key("GET", "//??//"), "GET://??//")
        self.assertEqual(derive_bucket_key("GET", None), "GET:None")  # type: ignore[arg-type]


class TestRateLimitHeaders(unittest.TestCase):
    """Tests for RateLimitHeaders.from_headers."""

    def test_parses_all_headers(self):
        """Should parse every x-ratelimit-* header."""
        headers = CaseInsensitiveDict({
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset-After": "1.25",
            "X-RateLimit-Bucket": "abcd1234",
            "X-RateLimit-Global": "true",
        })

        parsed = RateLimitHeaders.from_headers(headers)

        self.assertEqual(parsed, RateLimitHeaders(limit=5, remaining=0, reset_after=1.25, bucket="abcd1234", is_global=True))
        self.assertTrue(parsed.has_bucket_state)

    def test_missing_headers(self):
        """Should treat absent headers as unknown."""
        parsed = RateLimitHeaders.from_headers({})

        self.assertEqual(parsed, RateLimitHeaders())
        self.assertFalse(parsed.has_bucket_state)

    def test_unparsable_values_are_ignored(self):
        """Should treat garbage values as absent."""
        parsed = RateLimitHeaders.from_headers({
            "x-ratelimit-remaining": "lots",
            "x-ratelimit-reset-after": "soon",
        })

        self.assertIsNone(parsed.remaining)
        self.assertIsNone(parsed.reset_after)

    def test_float_remaining_is_truncated(self):
        """Should accept a remaining value written as a float."""
        self.assertEqual(RateLimitHeaders.from_headers({"x-ratelimit-remaining": "3.0"}).remaining, 3)


class TestRateLimitBucket(unittest.TestCase):
    """Tests for RateLimitBucket."""

    def test_is_exhausted_only_before_reset(self):
        """Should be exhausted only while remaining=0 and reset is in the future."""
        bucket = RateLimitBucket(id="b", remaining=0, reset_at=10.0)

        self.assertTrue(bucket.is_exhausted(9.9))
        self.assertFalse(bucket.is_exhausted(10.0))

    def test_unknown_remaining_is_not_exhausted(self):
        """Should not block when remaining is unknown."""
        self.assertFalse(RateLimitBucket(id="b", remaining=None, reset_at=10.0).is_exhausted(0.0))


class TestRateLimitState(unittest.TestCase):
    """Tests for RateLimitState."""

    def setUp(self):
        self.clock = FakeClock()
        self.state = RateLimitState(clock=self.clock)
        self.key = derive_bucket_key("GET", "channels/123456789012345678/messages")

    def test_cold_start_never_waits(self):
        """Should not wait when nothing is known."""
        self.assertEqual(self.state.wait_for_global(), 0.0)
        self.assertEqual(self.state.wait_for_bucket(self.key), 0.0)
        self.assertEqual(self.clock.sleeps, [])

    def test_update_without_bucket_state_is_ignored(self):
        """Should not create a bucket from headers lacking remaining/reset."""
        self.assertIsNone(self.state.update_from_headers(self.key, RateLimitHeaders(limit=5)))
        self.assertEqual(self.state.buckets(), {})

    def test_update_stores_absolute_reset(self):
        """Should store reset_at as now + reset_after under the derived key."""
        bucket = self.state.update_from_headers(self.key, RateLimitHeaders(limit=5, remaining=2, reset_after=3.5))

        self.assertEqual(bucket, RateLimitBucket(id=self.key, remaining=2, reset_at=503.5, limit=5))
        self.assertEqual(self.state.bucket_for(self.key), bucket)

    def test_learned_token_takes_over(self):
        """Should key later updates and waits by the server bucket token."""
        self.state.update_from_headers(self.key, RateLimitHeaders(remaining=1, reset_after=1.0, bucket="tok"))
        self.state.mark_bucket_exhausted(self.key, 2.0)

        self.assertEqual(self.state.resolve_bucket_id(self.key), "tok")
        self.assertEqual(self.state.bucket_for(self.key).id, "tok")
        self.assertEqual(self.state.bucket_for(self.key).remaining, 0)

    def test_routes_with_same_token_share_state(self):
        """Should let two route keys mapped to the same token share a bucket."""
        other_key = derive_bucket_key("GET", "channels/123456789012345678")
        self.state.update_from_headers(self.key, RateLimitHeaders(remaining=0, reset_after=2.0, bucket="tok"))
        self.state.update_from_headers(other_key, RateLimitHeaders(bucket="tok"))

        self.assertEqual(self.state.wait_for_bucket(other_key), 2.0)

    def test_wait_for_exhausted_bucket_then_mark_unknown(self):
        """Should sleep until reset and then mark remaining unknown."""
        self.state.update_from_headers(self.key, RateLimitHeaders(remaining=0, reset_after=1.5))

        waited = self.state.wait_for_bucket(self.key)

        self.assertEqual(waited, 1.5)
        self.assertEqual(self.clock.sleeps, [1.5])
        self.assertIsNone(self.state.bucket_for(self.key).remaining)

    def test_wait_rechecks_bucket_refreshed_while_sleeping(self):
        """Should keep waiting when another response pushes the reset further out."""
        clock = RefreshingClock(start=100.0)
        state = RateLimitState(clock=clock)
        state.update_from_headers(self.key, RateLimitHeaders(remaining=0, reset_after=5.0))
        clock.on_first_sleep = lambda: state.update_from_headers(
            self.key, RateLimitHeaders(remaining=0, reset_after=15.0)
        )

        waited = state.wait_for_bucket(self.key)

        self.assertEqual(clock.current, 115.0)
        self.assertEqual(waited, 15.0)
        self.assertEqual(clock.sleeps, [5.0, 10.0])
        self.assertIsNone(state.bucket_for(self.key).remaining)

    def test_mark_bucket_exhausted_keeps_limit(self):
        """Should keep the known limit when a 429 exhausts the bucket."""
        self.state.update_from_headers(self.key, RateLimitHeaders(limit=5, remaining=3, reset_after=1.0))

        bucket = self.state.mark_bucket_exhausted(self.key, 4.0)

        self.assertEqual(bucket, RateLimitBucket(id=self.key, remaining=0, reset_at=504.0, limit=5))

    def test_global_reset_blocks_then_clears(self):
        """Should block until the global reset, then not block again."""
        self.assertEqual(self.state.set_global_reset(3.0), 503.0)

        self.assertEqual(self.state.wait_for_global(), 3.0)
        self.assertEqual(self.state.wait_for_global(), 0.0)
        self.assertEqual(self.clock.sleeps, [3.0])

    def test_global_reset_is_overwritten(self):
        """Should take the most recent global deadline as truth."""
        self.state.set_global_reset(10.0)
        self.state.set_global_reset(1.0)

        self.assertEqual(self.state.global_reset_at, 501.0)

    def test_concurrent_updates_keep_table_consistent(self):
        """Should stay consistent under concurrent writers."""
        keys = [derive_bucket_key("GET", f"route/{i}") for i in range(20)]

        def writer(key: str) -> None:
            for remaining in range(50):
                self.state.update_from_headers(key, RateLimitHeaders(remaining=remaining, reset_after=1.0))

        threads = [threading.Thread(target=writer, args=(key,)) for key in keys]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        buckets = self.state.buckets()
        self.assertEqual(set(buckets), set(keys))
        self.assertTrue(all(bucket.remaining == 49 for bucket in buckets.values()))


if __name__ == "__main__":
    unittest.main()
