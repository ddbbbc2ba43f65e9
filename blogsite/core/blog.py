"""
In-memory blog index refreshed on demand from the CMS.
"""
import time
import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from blogsite.config import get_config
from blogsite.core.article import Article, article_id_from_slug
from blogsite.core.cache import AttachmentCache
from blogsite.core.processor import ContentProcessor
from blogsite.fetchers.emvi import CMSError

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 3600  # seconds
MAX_LATEST_ARTICLES = 3


def _newest_first(articles) -> List[Article]:
    return sorted(articles, key=lambda a: (a.published, a.id), reverse=True)


@dataclass(frozen=True)
class BlogIndex:
    """
    Immutable snapshot of the articles by id and by publication year.

    Both mappings are built together, so they always contain the same articles.
    """
    by_id: Mapping[str, Article] = field(default_factory=lambda: MappingProxyType({}))
    by_year: Mapping[int, Tuple[Article, ...]] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, articles: Dict[str, Article]) -> 'BlogIndex':
        years = {}
        for article in _newest_first(articles.values()):
            years.setdefault(article.year, []).append(article)

        return cls(
            by_id=MappingProxyType(dict(articles)),
            by_year=MappingProxyType({year: tuple(items) for year, items in years.items()}),
        )

    def __len__(self) -> int:
        return len(self.by_id)


class BlogCache:
    """
    Serves published blog articles from memory and resynchronizes them with the
    CMS when a read happens after the refresh deadline.

    Reads never wait for a refresh: while one is running, other callers get the
    current snapshot. A failed refresh keeps the previous snapshot.
    """
    def __init__(
        self,
        source,
        attachments: Optional[AttachmentCache] = None,
        processor: Optional[ContentProcessor] = None,
        tag: Optional[str] = None,
        refresh_interval: Optional[float] = None,
        latest_articles: Optional[int] = None,
        eager: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the BlogCache.

        Args:
            source: Article source providing find_articles and get_article_content
            attachments: Local attachment mirror
            processor: Content processor, built from source and attachments if omitted
            tag: Tag blog articles carry in the CMS
            refresh_interval: Seconds between two refreshes
            latest_articles: Default number of articles returned by get_latest_articles
            eager: Refresh right away instead of on the first read
            clock: Monotonic clock
        """
        logger.info("Initializing blog")
        self.source = source
        self.attachments = attachments or AttachmentCache()
        self.processor = processor or ContentProcessor(source, self.attachments)
        self.tag = tag or get_config('blog.tag', 'blog')
        self.refresh_interval = float(
            refresh_interval if refresh_interval is not None
            else get_config('blog.refresh_interval_seconds', REFRESH_INTERVAL)
        )
        self.latest_articles = int(
            latest_articles if latest_articles is not None
            else get_config('blog.latest_articles', MAX_LATEST_ARTICLES)
        )
        self.clock = clock

        self._index = BlogIndex()
        self._index_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self.next_refresh = self.clock()
        self.last_refresh_ok = None

        if eager if eager is not None else get_config('blog.eager_refresh', True):
            self.refresh(force=True)

    @property
    def index(self) -> BlogIndex:
        with self._index_lock:
            return self._index

    def _set_index(self, index: BlogIndex) -> None:
        with self._index_lock:
            self._index = index

    def refresh_due(self) -> bool:
        return self.clock() >= self.next_refresh

    def _refresh_if_required(self) -> BlogIndex:
        if self.refresh_due():
            self.refresh()
        return self.index

    def refresh(self, force: bool = False) -> bool:
        """
        Resynchronize the articles with the CMS.

        Only one refresh runs at a time; a call made while another one is in
        progress returns immediately.

        Args:
            force: Refresh even if the deadline has not passed yet

        Returns:
            True if a new index was published
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.debug("Blog refresh already in progress, serving current articles")
            return False

        try:
            if not force and not self.refresh_due():
                return False
            try:
                return self._load_articles()
            finally:
                self.next_refresh = self.clock() + self.refresh_interval
        finally:
            self._refresh_lock.release()

    def _fetch_listing(self) -> Optional[Dict[str, Article]]:
        articles, offset = {}, 0

        while True:
            try:
                results = self.source.find_articles(self.tag, offset)
            except CMSError as e:
                logger.error(f"Error loading blog articles: {e}")
                return None
            except Exception as e:
                logger.exception(f"Unexpected error loading blog articles: {e}")
                return None

            if not results:
                return articles

            offset += len(results)
            for article in results:
                articles[article.id] = article

    def _load_articles(self) -> bool:
        logger.info("Refreshing blog articles...")
        listing = self._fetch_listing()

        if listing is None:
            self.last_refresh_ok = False
            logger.info(f"Keeping {len(self.index)} cached articles")
            return False

        previous = self.index.by_id
        articles = {}
        for article_id, article in listing.items():
            try:
                loaded = self.processor.process(article)
            except Exception as e:
                logger.exception(f"Failed to process article {article_id}: {e}")
                loaded = None

            if loaded is None:
                loaded = previous.get(article_id)
                if loaded is not None:
                    logger.warning(f"Keeping previously loaded version of article {article_id}")
            if loaded is not None:
                articles[article_id] = loaded

        self._set_index(BlogIndex.build(articles))
        self.last_refresh_ok = True
        logger.info(f"Done, {len(articles)} articles loaded")
        return True

    def get_article(self, article_id: str) -> Optional[Article]:
        """
        Get an article by id.

        Args:
            article_id: Id of the article

        Returns:
            The article, or None if there is no such article
        """
        return self._refresh_if_required().by_id.get(article_id)

    def get_article_by_slug(self, slug: str) -> Optional[Article]:
        """
        Get an article by a slug in the form <title>-<id>.
        """
        article_id = article_id_from_slug(slug)
        if not article_id:
            return None
        return self.get_article(article_id)

    def get_articles(self) -> Mapping[int, Tuple[Article, ...]]:
        """
        Get all articles grouped by publication year, newest first within a year.
        """
        return self._refresh_if_required().by_year

    def get_latest_articles(self, n: Optional[int] = None) -> List[Article]:
        """
        Get the most recently published articles.

        Args:
            n: Maximum number of articles, defaults to blog.latest_articles

        Returns:
            Up to n articles, newest first
        """
        n = self.latest_articles if n is None else n
        if n <= 0:
            return []
        return _newest_first(self._refresh_if_required().by_id.values())[:n]
