"""
HTTP utilities for the blog cache.
"""
import logging
from typing import Optional

import requests

from blogsite.config import get_config

# Configure logging
logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
DEFAULT_USER_AGENT = 'blogsite/0.1'


def request_timeout() -> float:
    """Configured timeout for outbound requests, in seconds."""
    return float(get_config('http.timeout_seconds', REQUEST_TIMEOUT))


def create_session(user_agent: Optional[str] = None) -> requests.Session:
    """
    Create a requests session with the headers shared by all outbound calls.

    Args:
        user_agent: User agent to send, defaults to http.user_agent

    Returns:
        Configured session
    """
    session = requests.Session()
    session.headers.update({
        'User-Agent': user_agent or get_config('http.user_agent', DEFAULT_USER_AGENT),
        'Accept': 'application/json, */*;q=0.8',
    })
    return session


def status_code_of(error: Exception) -> Optional[int]:
    """
    Status code of the response attached to a requests exception, if any.
    """
    response = getattr(error, 'response', None)
    return response.status_code if response is not None else None


def log_request_error(error: requests.exceptions.RequestException, url: str) -> None:
    """
    Log a failed request with its status code when the server answered.

    Args:
        error: The exception raised by requests
        url: The requested URL
    """
    logger.error(f"An error occurred while requesting {url}: {error}")
    status = status_code_of(error)
    if status is not None:
        logger.error(f"Status code: {status}")
        if status == 401:
            logger.error("Authentication failed. Please check the CMS client credentials")
