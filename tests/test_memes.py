import asyncio
import random

import pytest

from conftest import FakeResponse, FakeSession
from core.errors import AccessDeniedError, NotFoundError, UnavailableError
from core.memes import Meme, MemeService, is_valid_subreddit, load_subreddits, pick_posts


def _post(url, **extra):
    data = {"url": url, "title": "t", "author": "a", "subreddit": "memes", "ups": 1234, "permalink": "/r/memes/x"}
    data.update(extra)
    return {"data": data}


def _service():
    return MemeService(subreddits=["memes"], rng=random.Random(3))


def test_load_subreddits_falls_back(tmp_path):
    assert "memes" in load_subreddits()
    missing = tmp_path / "nope.yaml"
    assert load_subreddits(missing) == ["memes", "dankmemes", "wholesomememes"]


def test_pick_posts_filters():
    children = [
        _post("https://i.redd.it/a.jpg"),
        _post("https://i.redd.it/b.PNG"),
        _post("https://v.redd.it/c", is_video=True),
        _post("https://i.redd.it/d.gif", stickied=True),
        _post("https://i.redd.it/e.mp4"),
    ]
    assert [p["url"] for p in pick_posts(children)] == ["https://i.redd.it/a.jpg", "https://i.redd.it/b.PNG"]


def test_is_valid_subreddit():
    assert is_valid_subreddit("me_irl")
    assert not is_valid_subreddit("bad name")
    assert not is_valid_subreddit("")


def test_preferences():
    service = _service()
    service.set_preference(1, "dankmemes")
    assert service.preferred(1) == "dankmemes"
    service.set_preference(1, None)
    assert service.preferred(1) is None


def test_fetch_returns_meme():
    session = FakeSession(
        [("https://www.reddit.com/r/memes/", FakeResponse(payload={"data": {"children": [_post("https://i.redd.it/a.jpg")]}}))]
    )
    meme = asyncio.run(_service().fetch(session))
    assert meme.url == "https://i.redd.it/a.jpg"
    assert meme.link == "https://reddit.com/r/memes/x"
    assert meme.sort_method in ("hot", "top", "new")
    params = session.calls[0][2]["params"]
    assert params["limit"] == "100"
    assert ("t" in params) == (meme.sort_method == "top")


@pytest.mark.parametrize(
    "response, error",
    [
        (FakeResponse(status=403), AccessDeniedError),
        (FakeResponse(status=404), NotFoundError),
        (FakeResponse(payload={"data": {"children": []}}), NotFoundError),
        (FakeResponse(payload={"data": {"children": [_post("https://x/y.mp4")]}}), UnavailableError),
        (FakeResponse(status=500), UnavailableError),
    ],
)
def test_fetch_errors(response, error):
    session = FakeSession([("https://www.reddit.com/", response)])
    with pytest.raises(error):
        asyncio.run(_service().fetch(session, "somesub"))


def test_empty_listing_message():
    session = FakeSession([("https://www.reddit.com/", FakeResponse(payload={"data": {"children": []}}))])
    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(_service().fetch(session, "ghost"))
    assert "doesn't exist or has no posts" in excinfo.value.user_message


def test_captions():
    meme = Meme("Title", "u", "bob", "memes", 12345, "l", "top", "week")
    assert meme.caption() == "Title\n\n💻 u/bob\n⌨️ r/memes"
    detailed = meme.detailed_caption()
    assert "👍 12,345" in detailed
    assert "📊 From top/week" in detailed
