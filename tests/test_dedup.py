# File: tests/test_dedup.py
from concurrent.futures import ThreadPoolExecutor

from spider_stream.dedup import StringFilter


def test_test_and_insert():
    seen = StringFilter()
    assert seen.test_and_insert("https://x.test/") is False
    assert seen.test_and_insert("https://x.test/") is True
    assert "https://x.test/" in seen
    assert len(seen) == 1


def test_initial_values():
    seen = StringFilter(["a", "b"])
    assert seen.test_and_insert("a") is True
    assert seen.test_and_insert("c") is False
    assert len(seen) == 3


def test_exactly_one_winner_across_threads():
    seen = StringFilter()
    keys = [f"key-{i % 50}" for i in range(2000)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(seen.test_and_insert, keys))
    # every distinct key is "newly inserted" exactly once
    assert results.count(False) == 50
    assert len(seen) == 50
