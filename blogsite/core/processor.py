"""
Article ingestion for the blog cache.
"""
import logging
from dataclasses import replace
from typing import Optional

from blogsite.config import get_config
from blogsite.core.article import Article
from blogsite.core.cache import AttachmentCache
from blogsite.fetchers.emvi import CMSError
from blogsite.formatters.html import ContentRewriter, HtmlSanitizer

logger = logging.getLogger(__name__)


def rewriter_from_config() -> ContentRewriter:
    return ContentRewriter(
        link_prefix=get_config('blog.link_prefix', '/blog'),
        static_prefix=get_config('blog.static_prefix', '/static/blog'),
        content_path=get_config('blog.content_path', '/api/v1/content/'),
        attachment_host=get_config('blog.attachment_host'),
    )


class ContentProcessor:
    """
    Loads the full body of an article and prepares it for local serving.
    """
    def __init__(
        self,
        source,
        attachments: AttachmentCache,
        rewriter: Optional[ContentRewriter] = None,
        sanitizer: Optional[HtmlSanitizer] = None,
    ):
        """
        Initialize the ContentProcessor.

        Args:
            source: Article source providing get_article_content
            attachments: Cache attachments are mirrored into
            rewriter: Link and attachment rewriter, built from the configuration if omitted
            sanitizer: Markup sanitizer
        """
        self.source = source
        self.attachments = attachments
        self.rewriter = rewriter or rewriter_from_config()
        self.sanitizer = sanitizer or HtmlSanitizer()

    def process(self, article: Article) -> Optional[Article]:
        """
        Fetch, sanitize and rewrite the content of an article and mirror its attachments.

        Args:
            article: Article from the listing

        Returns:
            The article with its processed content, or None if the content could not be loaded
        """
        try:
            content = self.source.get_article_content(article.id, article.language_id, 0)
        except CMSError as e:
            logger.error(f"Error loading article {article.id}: {e}")
            return None

        body = self.sanitizer.sanitize(content.content)
        found = self.rewriter.find_attachments(body)
        if found:
            self.attachments.store(article.id, found)

        body = self.rewriter.rewrite(body, article.id)
        logger.debug(f"Article loaded: {article.id}")
        return article.with_content(replace(
            content,
            content=body,
            language_id=content.language_id or article.language_id,
        ))
