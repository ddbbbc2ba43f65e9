"""
HTML processing utilities for article bodies.
"""
import re
from html import escape, unescape
import logging
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup, Comment

# Configure logging
logger = logging.getLogger(__name__)

REMOVED_TAGS = ['script', 'style', 'iframe', 'object', 'embed', 'frame', 'frameset']
URL_ATTRIBUTES = {'href', 'src', 'action', 'formaction', 'xlink:href'}
SCRIPT_URL = re.compile(r'^\s*(javascript|vbscript)\s*:', re.IGNORECASE)


class HtmlSanitizer:
    """
    Removes active content from article markup before it is served.
    """
    def __init__(self, removed_tags: Optional[List[str]] = None):
        self.removed_tags = removed_tags or REMOVED_TAGS

    def sanitize(self, html: str) -> str:
        """
        Strip scripts, embedded frames, comments, event handlers and script URLs.

        Args:
            html: Article body markup

        Returns:
            Sanitized markup
        """
        if not html:
            return ''

        soup = BeautifulSoup(html, 'html.parser')
        for element in soup(self.removed_tags):
            element.decompose()
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        for tag in soup.find_all(True):
            for name in list(tag.attrs):
                value = tag.attrs[name]
                if name.lower().startswith('on'):
                    del tag.attrs[name]
                elif name.lower() in URL_ATTRIBUTES and isinstance(value, str) and SCRIPT_URL.match(value):
                    logger.debug(f"Removed script URL from <{tag.name} {name}>")
                    del tag.attrs[name]

        return str(soup)


@dataclass(frozen=True)
class Attachment:
    """
    Attachment referenced from an article body.
    """
    url: str
    token: str


def attachment_name(reference: str) -> str:
    """
    File name of an attachment reference as it appears in markup: entities
    decoded, query string and fragment dropped.
    """
    return re.split(r"[?#]", unescape(reference), maxsplit=1)[0]


class ContentRewriter:
    """
    Rewrites CMS links and attachment references to paths served by the site.
    """
    def __init__(
        self,
        link_prefix: str = '/blog',
        static_prefix: str = '/static/blog',
        content_path: str = '/api/v1/content/',
        attachment_host: Optional[str] = None,
        read_path: str = '/read/',
    ):
        """
        Initialize the ContentRewriter.

        Args:
            link_prefix: Local path articles are served under
            static_prefix: Local path mirrored attachments are served under
            content_path: Path of the CMS endpoint serving attachments
            attachment_host: Only rewrite attachments of this host (scheme and host),
                any host when None
            read_path: Path the CMS uses for links between articles
        """
        self.link_prefix = link_prefix.rstrip('/')
        self.static_prefix = static_prefix.rstrip('/')
        host = re.escape(attachment_host.rstrip('/')) if attachment_host else r'[^"]+?'

        self.link_pattern = re.compile(
            r'href="' + re.escape(read_path) + r'([^"]+)"',
            re.IGNORECASE,
        )
        self.attachment_pattern = re.compile(
            r'(href|src)="(' + host + re.escape(content_path) + r')([^"]+)"',
            re.IGNORECASE,
        )

    def rewrite_links(self, html: str) -> str:
        """
        Point links to other CMS articles at the local blog.
        """
        return self.link_pattern.sub(
            lambda m: f'href="{self.link_prefix}/{m.group(1)}"', html
        )

    def find_attachments(self, html: str) -> List[Attachment]:
        """
        Collect attachments referenced by the markup, without duplicates and in
        order of first appearance.
        """
        seen = {}
        for match in self.attachment_pattern.finditer(html):
            reference = match.group(3)
            token = attachment_name(reference)
            if token not in seen:
                seen[token] = Attachment(url=unescape(match.group(2) + reference), token=token)
        return list(seen.values())

    def rewrite_attachments(self, html: str, article_id: str) -> str:
        """
        Point attachment references at the local mirror of the article.
        """
        return self.attachment_pattern.sub(
            lambda m: f'{m.group(1)}="{self.static_prefix}/{article_id}/{escape(attachment_name(m.group(3)))}"',
            html,
        )

    def rewrite(self, html: str, article_id: str) -> str:
        return self.rewrite_attachments(self.rewrite_links(html), article_id)
