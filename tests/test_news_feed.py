import aiohttp
import pytest

from news_feed import NewsFeed


def _feed(monkeypatch, status, payload, calls=None):
    feed = NewsFeed(api_url="https://news.test/v2/news/")

    async def fake_request(params):
        if calls is not None:
            calls.append(params)
        return status, payload

    monkeypatch.setattr(feed, "_request", fake_request)
    return feed


@pytest.mark.asyncio
async def test_fetch_maps_articles(monkeypatch):
    calls = []
    payload = {
        "Type": 100,
        "Data": [
            {
                "id": "123",
                "title": "Bitcoin climbs",
                "source": "coindesk",
                "published_on": 1700000000,
                "url": "https://example.com/a",
                "imageurl": "https://example.com/a.png",
            },
            {"id": "124", "title": "", "url": "https://example.com/b"},
        ],
    }
    feed = _feed(monkeypatch, 200, payload, calls)

    articles = await feed.fetch("btc")

    assert calls == [{"lang": "EN", "categories": "BTC"}]
    assert len(articles) == 1
    article = articles[0]
    assert article.title == "Bitcoin climbs"
    assert article.image_url == "https://example.com/a.png"
    assert article.published_on.year == 2023


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, payload",
    [
        (500, None),
        (200, {"Type": 2, "Message": "rate limit"}),
        (200, {"Type": 100, "Data": "nope"}),
        (200, None),
    ],
)
async def test_failures_yield_empty_list(monkeypatch, status, payload):
    feed = _feed(monkeypatch, status, payload)
    assert await feed.fetch("ETH") == []


@pytest.mark.asyncio
async def test_transport_error_yields_empty_list(monkeypatch):
    feed = NewsFeed(api_url="https://news.test/v2/news/")

    async def boom(params):
        raise aiohttp.ClientConnectionError("offline")

    monkeypatch.setattr(feed, "_request", boom)
    assert await feed.fetch("ETH") == []
