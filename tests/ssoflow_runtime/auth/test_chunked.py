"""Tests for chunked cookie storage."""

from ssoflow_runtime.auth.chunked import CHUNK_SIZE, ChunkedStore
from ssoflow_runtime.drivers import MemoryCookieJar


class TestChunkedStore:
    def test_small_value_uses_one_entry(self) -> None:
        jar = MemoryCookieJar()
        store = ChunkedStore(jar)
        store.set("google_token", "abc")
        assert jar.values == {"google_token": "abc"}
        assert store.get("google_token") == "abc"

    def test_value_one_over_chunk_size_uses_two_entries(self) -> None:
        jar = MemoryCookieJar()
        store = ChunkedStore(jar)
        value = "x" * (CHUNK_SIZE + 1)

        store.set("google_token", value)

        assert set(jar.values) == {"google_token", "google_token-1"}
        assert len(jar.values["google_token"]) == CHUNK_SIZE
        assert jar.values["google_token-1"] == "x"
        assert store.get("google_token") == value

    def test_shorter_value_removes_stale_continuations(self) -> None:
        jar = MemoryCookieJar()
        store = ChunkedStore(jar, chunk_size=4)
        store.set("t", "aaaabbbbcccc")
        assert set(jar.values) == {"t", "t-1", "t-2"}

        store.set("t", "dd")

        assert jar.values == {"t": "dd"}
        assert store.get("t") == "dd"

    def test_clear_removes_all_chunks(self) -> None:
        jar = MemoryCookieJar()
        store = ChunkedStore(jar, chunk_size=2)
        store.set("t", "abcdef")
        jar.set("other", "keep")

        store.clear("t")

        assert jar.values == {"other": "keep"}
        assert store.get("t") is None

    def test_reassembly_stops_at_first_gap(self) -> None:
        jar = MemoryCookieJar()
        jar.values.update({"t": "ab", "t-1": "cd", "t-3": "zz"})
        assert ChunkedStore(jar).get("t") == "abcd"

    def test_missing_is_none(self) -> None:
        assert ChunkedStore(MemoryCookieJar()).get("t") is None
