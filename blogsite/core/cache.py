"""
On-disk attachment cache for blog articles.
"""
import os
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import requests

from blogsite.config import get_config
from blogsite.formatters.html import Attachment
from blogsite.utils.http import create_session, log_request_error, request_timeout

logger = logging.getLogger(__name__)

# Cache configuration
CACHE_DIR = Path("static/blog")
DIR_MODE = 0o755
FILE_MODE = 0o644


class AttachmentCache:
    """
    Mirrors article attachments into <cache dir>/<article id>/<token>.

    Files are never deleted; an attachment already on disk is not downloaded again.
    """
    def __init__(self, directory: Optional[str] = None, session: Optional[requests.Session] = None):
        self.directory = Path(directory or get_config('blog.cache_directory', str(CACHE_DIR)))
        self.session = session or create_session()
        self._init_cache_dir()

    def _init_cache_dir(self):
        """Initialize the cache directory."""
        try:
            self.directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Error creating blog file cache directory {self.directory}: {e}")

    def article_dir(self, article_id: str) -> Optional[Path]:
        """
        Directory of an article, or None if the id would escape the cache directory.
        """
        root = self.directory.resolve()
        path = (root / article_id).resolve()
        if Path(article_id).is_absolute() or root not in path.parents:
            return None
        return path

    def path_for(self, article_id: str, token: str) -> Optional[Path]:
        """
        Location of an attachment on disk, or None if the token would escape
        the article directory.
        """
        base = self.article_dir(article_id)
        if base is None:
            return None
        target = (base / token).resolve()
        if Path(token).is_absolute() or base not in target.parents:
            return None
        return target

    def has(self, article_id: str, token: str) -> bool:
        try:
            path = self.path_for(article_id, token)
            return path is not None and path.is_file()
        except OSError:
            return False

    def _ensure_article_dir(self, article_id: str) -> bool:
        try:
            path = self.article_dir(article_id)
            if path is None:
                logger.warning(f"Skipping attachments of article with unsafe id {article_id!r}")
                return False
            if path.is_dir():
                return True
            path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.error(f"Error creating article file cache directory for {article_id}: {e}")
            return False

    def _download(self, url: str) -> bytes:
        response = self.session.get(url, timeout=request_timeout())
        response.raise_for_status()
        return response.content

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        partial = path.with_name(path.name + '.part')
        try:
            with open(partial, 'wb') as f:
                f.write(data)
            os.chmod(partial, FILE_MODE)
            os.replace(partial, path)
        except OSError:
            if partial.exists():
                partial.unlink()
            raise

    def store(self, article_id: str, attachments: Iterable[Attachment]) -> List[str]:
        """
        Download the attachments of an article that are not cached yet.

        Failures are logged and skipped.

        Args:
            article_id: Id of the article the attachments belong to
            attachments: Attachments found in the article body

        Returns:
            Tokens of the attachments downloaded by this call
        """
        if not self._ensure_article_dir(article_id):
            return []

        downloaded = []
        for attachment in attachments:
            try:
                path = self.path_for(article_id, attachment.token)
                if path is None:
                    logger.warning(f"Skipping attachment with unsafe name {attachment.token!r} of article {article_id}")
                    continue
                if path.is_file():
                    continue
            except OSError as e:
                logger.error(f"Error checking blog attachment {attachment.token} of article {article_id}: {e}")
                continue

            try:
                data = self._download(attachment.url)
            except requests.exceptions.RequestException as e:
                logger.error(f"Error downloading blog attachment of article {article_id}")
                log_request_error(e, attachment.url)
                continue

            try:
                self._write(path, data)
            except OSError as e:
                logger.error(f"Error saving blog attachment {attachment.token} of article {article_id} on disk: {e}")
                continue

            downloaded.append(attachment.token)
            logger.debug(f"Saved attachment {attachment.token} of article {article_id}")

        return downloaded
