import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from blogsite.core.article import Article, ArticleContent
from blogsite.core.blog import BlogCache
from blogsite.core.cache import AttachmentCache
from blogsite.fetchers.emvi import CMSError


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b""):
        self.status_code = status_code
        self._json = json_data
        self.content = content

    def json(self):
        if self._json is None:
            raise ValueError("no JSON")
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Answers requests from a table of (method, url) -> responses."""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        answer = self.responses.get((method, url))
        if answer is None:
            raise requests.exceptions.ConnectionError(f"no route to {url}")
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def request(self, method, url, **kwargs):
        return self._respond(method, url, **kwargs)

    def urls(self, method="GET"):
        return [url for m, url, _ in self.calls if m == method]


class FakeSource:
    """In-memory article source paging through a fixed list of articles."""

    def __init__(self, articles, bodies, page_size=2):
        self.articles = list(articles)
        self.bodies = dict(bodies)
        self.page_size = page_size
        self.listing_offsets = []
        self.content_calls = []
        self.fail_listing = False
        self.fail_content = set()
        self.on_listing = None
        self.on_content = None

    def find_articles(self, tag, offset=0):
        self.listing_offsets.append(offset)
        if self.on_listing:
            self.on_listing()
        if self.fail_listing:
            raise CMSError("listing unavailable", 503)
        return self.articles[offset:offset + self.page_size]

    def get_article_content(self, article_id, language_id, version=0):
        self.content_calls.append(article_id)
        if self.on_content:
            self.on_content(article_id)
        if article_id in self.fail_content:
            raise CMSError(f"article {article_id} unavailable", 500)
        return ArticleContent(
            title=f"Title {article_id}",
            content=self.bodies[article_id],
            language_id=language_id,
        )

    @property
    def refresh_attempts(self):
        return self.listing_offsets.count(0)

    @property
    def network_calls(self):
        return len(self.listing_offsets) + len(self.content_calls)


def make_article(article_id, year, month=1, day=1):
    return Article(
        id=article_id,
        published=datetime(year, month, day, 12, 0, tzinfo=timezone.utc),
        latest_content=ArticleContent(title=f"Title {article_id}", content="", language_id="en"),
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def source():
    articles = [
        make_article("a1", 2021, 5, 1),
        make_article("a2", 2020, 3, 2),
        make_article("a3", 2021, 1, 9),
    ]
    bodies = {
        "a1": '<p>See <a href="/read/a2">the older post</a>.</p>'
              '<img src="https://api.emvi.com/api/v1/content/cover.png"/>',
        "a2": '<p>Plain text</p>',
        "a3": '<a href="https://api.emvi.com/api/v1/content/slides.pdf">Slides</a>'
              '<img src="https://api.emvi.com/api/v1/content/cover.png"/>',
    }
    return FakeSource(articles, bodies)


@pytest.fixture
def attachment_session():
    return FakeSession({
        ("GET", "https://api.emvi.com/api/v1/content/cover.png"): FakeResponse(content=b"PNG"),
        ("GET", "https://api.emvi.com/api/v1/content/slides.pdf"): FakeResponse(content=b"PDF"),
    })


@pytest.fixture
def attachments(tmp_path, attachment_session):
    return AttachmentCache(str(tmp_path / "blog"), session=attachment_session)


@pytest.fixture
def make_blog(source, attachments, clock):
    def _make(**overrides):
        options = dict(
            attachments=attachments,
            tag="blog",
            refresh_interval=3600,
            latest_articles=3,
            eager=True,
            clock=clock,
        )
        options.update(overrides)
        return BlogCache(source, **options)
    return _make
