from analysis_cache import AnalysisCache


def test_put_and_get():
    cache = AnalysisCache()
    first, second = object(), object()

    assert cache.get("BTC/USDT") is None
    cache.put("BTC/USDT", first)
    cache.put("ETH/USDT", second)

    assert cache.get("BTC/USDT") is first
    assert "ETH/USDT" in cache
    assert len(cache) == 2
    assert sorted(cache.symbols()) == ["BTC/USDT", "ETH/USDT"]


def test_newer_result_replaces_older():
    cache = AnalysisCache()
    cache.put("BTC/USDT", "old")
    cache.put("BTC/USDT", "new")
    assert cache.get("BTC/USDT") == "new"
    assert len(cache) == 1
