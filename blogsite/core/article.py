"""
Article data model for the blog cache.
"""
import re
import unicodedata
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an API timestamp (RFC 3339, optionally with a trailing Z).

    Missing or malformed values map to the Unix epoch so the article still
    lands in a year bucket.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)

    text = str(value).strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    # fromisoformat only accepts up to six fractional digits
    text = re.sub(r'(\.\d{6})\d+', r'\1', text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def slugify(text: str) -> str:
    text = unicodedata.normalize('NFKD', text or '').encode('ascii', 'ignore').decode('ascii')
    text = re.sub(r'[^a-z0-9\s-]', '', text.lower())
    return re.sub(r'[\s-]+', '-', text).strip('-')


@dataclass(frozen=True)
class ArticleContent:
    """
    One language variant of an article body.
    """
    title: str
    content: str
    language_id: str
    version: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ArticleContent':
        return cls(
            title=data.get('title') or '',
            content=data.get('content') or '',
            language_id=data.get('language_id') or '',
            version=int(data.get('version') or 0),
        )


@dataclass(frozen=True)
class Article:
    """
    Represents a published blog article with its metadata and latest content.
    """
    id: str
    published: datetime
    latest_content: Optional[ArticleContent] = None
    organization_id: Optional[str] = None
    language_ids: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Article':
        """
        Build an Article from a search result of the CMS API.

        Args:
            data: Article object as returned by the API

        Returns:
            Article instance
        """
        content = data.get('latest_article_content')
        tags = data.get('tags') or ()
        return cls(
            id=str(data['id']),
            published=parse_timestamp(data.get('published')),
            latest_content=ArticleContent.from_dict(content) if content else None,
            organization_id=data.get('organization_id'),
            language_ids=tuple(data.get('language_ids') or ()),
            tags=tuple(tag.get('name', '') if isinstance(tag, dict) else str(tag) for tag in tags),
        )

    @property
    def year(self) -> int:
        return self.published.year

    @property
    def title(self) -> str:
        return self.latest_content.title if self.latest_content else ''

    @property
    def language_id(self) -> str:
        """Language of the latest content, used to request the full body."""
        if self.latest_content and self.latest_content.language_id:
            return self.latest_content.language_id
        return self.language_ids[0] if self.language_ids else ''

    @property
    def slug(self) -> str:
        """
        URL slug in the form <title>-<id>; the id is always the last segment.
        """
        title = slugify(self.title)
        return f"{title}-{self.id}" if title else self.id

    def with_content(self, content: ArticleContent) -> 'Article':
        return replace(self, latest_content=content)


def article_id_from_slug(slug: str) -> str:
    """
    Extract the article id from a slug produced by Article.slug.

    Returns an empty string for an empty slug.
    """
    return (slug or '').strip('/').split('-')[-1]
