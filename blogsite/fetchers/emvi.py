"""
Emvi CMS client for the blog cache.
"""
import time
import logging
from typing import Any, Dict, List, Optional

import backoff
import requests

from blogsite.config import get_config
from blogsite.core.article import Article, ArticleContent
from blogsite.utils.http import create_session, log_request_error, request_timeout, status_code_of

# Configure logging
logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = '/api/v1/auth/token'
SEARCH_ARTICLES_ENDPOINT = '/api/v1/search/article'
ARTICLE_ENDPOINT = '/api/v1/article/{id}'
SORT_DESCENDING = 'desc'
TOKEN_EXPIRY_MARGIN = 60  # seconds


class CMSError(Exception):
    """
    Raised when the CMS cannot be reached or answers with an error.
    """
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CMSAuthError(CMSError):
    """
    Raised when no access token can be obtained for the configured client.
    """


def _is_client_error(error: Exception) -> bool:
    status = status_code_of(error)
    return status is not None and 400 <= status < 500


class EmviClient:
    """
    Reads published articles from the Emvi API using client credentials.
    """
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        organization: Optional[str] = None,
        api_url: Optional[str] = None,
        auth_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        clock=time.monotonic,
    ):
        """
        Initialize the EmviClient. Arguments left out are read from the cms.* configuration.

        Args:
            client_id: API client id
            client_secret: API client secret
            organization: Organization name the client belongs to
            api_url: Base URL of the API
            auth_url: Base URL of the authentication service
            session: HTTP session to use
            clock: Monotonic clock used for token expiry
        """
        self.client_id = client_id if client_id is not None else get_config('cms.client_id', '')
        self.client_secret = client_secret if client_secret is not None else get_config('cms.client_secret', '')
        self.organization = organization if organization is not None else get_config('cms.organization', '')
        self.api_url = (api_url or get_config('cms.api_url')).rstrip('/')
        self.auth_url = (auth_url or get_config('cms.auth_url')).rstrip('/')
        self.session = session or create_session()
        self.clock = clock
        self._token = None
        self._token_expires = 0.0

    @backoff.on_exception(
        backoff.expo,
        requests.exceptions.RequestException,
        max_tries=3,
        giveup=_is_client_error,
    )
    def _request_token(self) -> Dict[str, Any]:
        response = self.session.post(
            self.auth_url + TOKEN_ENDPOINT,
            json={
                'grant_type': 'client_credentials',
                'client_id': self.client_id,
                'client_secret': self.client_secret,
            },
            timeout=request_timeout(),
        )
        response.raise_for_status()
        return response.json()

    def _access_token(self) -> str:
        """
        Return a valid access token, requesting a new one when it is about to expire.

        Raises:
            CMSAuthError: If the token cannot be obtained
        """
        if self._token and self.clock() < self._token_expires:
            return self._token

        if not self.client_id or not self.client_secret:
            raise CMSAuthError("CMS client credentials are not configured")

        try:
            data = self._request_token()
        except requests.exceptions.RequestException as e:
            log_request_error(e, self.auth_url + TOKEN_ENDPOINT)
            raise CMSAuthError(f"Error requesting access token: {e}", status_code_of(e)) from e
        except ValueError as e:
            raise CMSAuthError(f"Invalid token response: {e}") from e

        token = data.get('access_token')
        if not token:
            raise CMSAuthError("Token response did not contain an access token")

        self._token = token
        expires_in = float(data.get('expires_in') or 0)
        self._token_expires = self.clock() + max(0.0, expires_in - TOKEN_EXPIRY_MARGIN)
        logger.debug("Obtained new CMS access token")
        return token

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self._access_token()}',
            'Client': self.client_id,
            'Organization': self.organization,
        }

    def _call(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Perform an authenticated API call and decode the JSON answer.

        A 401 invalidates the cached token and the call is repeated once.

        Raises:
            CMSError: On transport errors, error responses or invalid JSON
        """
        url = self.api_url + endpoint

        for attempt in range(2):
            try:
                response = self.session.request(
                    method, url, headers=self._headers(), timeout=request_timeout(), **kwargs
                )
                if response.status_code == 401 and attempt == 0:
                    logger.info("CMS access token rejected, requesting a new one")
                    self._token = None
                    continue
                response.raise_for_status()
                return response.json()
            except requests.exceptions.RequestException as e:
                log_request_error(e, url)
                raise CMSError(f"Error calling {url}: {e}", status_code_of(e)) from e
            except ValueError as e:
                raise CMSError(f"Invalid JSON from {url}: {e}") from e

        raise CMSAuthError(f"Access to {url} denied", 401)

    def find_articles(self, tag: str, offset: int = 0) -> List[Article]:
        """
        Fetch one page of published articles with the given tag, newest first.

        Args:
            tag: Tag the articles must carry
            offset: Number of articles to skip

        Returns:
            Articles of the page, empty when there are no more

        Raises:
            CMSError: If the page cannot be fetched
        """
        data = self._call('POST', SEARCH_ARTICLES_ENDPOINT, json={
            'offset': offset,
            'tags': tag,
            'sort_published': SORT_DESCENDING,
        })
        results = data.get('results', data.get('articles')) if isinstance(data, dict) else data

        try:
            return [Article.from_dict(item) for item in results or []]
        except (KeyError, TypeError) as e:
            raise CMSError(f"Unexpected article listing format: {e}") from e

    def get_article_content(self, article_id: str, language_id: str, version: int = 0) -> ArticleContent:
        """
        Fetch the full content of an article.

        Args:
            article_id: Id of the article
            language_id: Language of the content to fetch
            version: Content version, 0 for the latest

        Returns:
            The article content

        Raises:
            CMSError: If the content cannot be fetched
        """
        data = self._call(
            'GET',
            ARTICLE_ENDPOINT.format(id=article_id),
            params={'lang': language_id, 'version': version},
        )
        content = data.get('content') if isinstance(data, dict) else None
        if not isinstance(content, dict):
            raise CMSError(f"Article {article_id} has no content")
        return ArticleContent.from_dict(content)
