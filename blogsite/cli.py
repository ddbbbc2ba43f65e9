"""
Command-line interface for the blog cache.
"""
import os
import sys
import argparse
import logging
from typing import List, Optional

import yaml
from dotenv import load_dotenv

from blogsite import config as config_module
from blogsite.config import ENV_PREFIX, is_secret
from blogsite.core.article import Article
from blogsite.core.blog import BlogCache
from blogsite.fetchers.emvi import EmviClient

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
}

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> int:
    """
    Configure logging for the process.

    Args:
        level: debug, info or anything else for warnings and above

    Returns:
        The numeric log level
    """
    numeric = LOG_LEVELS.get(str(level or '').lower(), logging.WARNING)
    logging.basicConfig(level=numeric, format=LOG_FORMAT, force=True)
    logger.info("Configured logging")
    return numeric


def log_env_config(environ=None) -> None:
    """
    Log the environment variables of the site, with credentials masked.
    """
    environ = os.environ if environ is None else environ
    for key in sorted(environ):
        if key.startswith(ENV_PREFIX):
            value = '****' if is_secret(key) and environ[key] else environ[key]
            logger.info(f"{key}={value}")


def parse_args(argv: Optional[List[str]] = None):
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="Blog content cache for the personal website")
    parser.add_argument("--config", help="Path to a YAML or JSON configuration file")
    parser.add_argument("--no-eager", action="store_true", help="Do not refresh when the cache is created")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("refresh", help="Refresh articles and attachments once")
    subparsers.add_parser("list", help="List articles grouped by year")
    latest = subparsers.add_parser("latest", help="List the latest articles")
    latest.add_argument("-n", type=int, help="Number of articles")
    show = subparsers.add_parser("show", help="Show a single article")
    show.add_argument("article", help="Article id or slug")
    subparsers.add_parser("config", help="Print the effective configuration")
    return parser.parse_args(argv)


def format_article(article: Article) -> str:
    return f"{article.published:%Y-%m-%d}  {article.id}  {article.title}"


def build_blog(eager: bool = True) -> BlogCache:
    return BlogCache(EmviClient(), eager=eager)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the command-line script.
    """
    # Explicitly reload environment variables from .env file
    load_dotenv(override=True)
    args = parse_args(argv)
    cfg = config_module.load_config(args.config)
    configure_logging(cfg.get('logging.level'))
    log_env_config()

    if args.command == "config":
        print(yaml.safe_dump(cfg.masked(), default_flow_style=False, sort_keys=True), end='')
        return 0

    try:
        if args.command == "refresh":
            blog = build_blog(eager=False)
            if not blog.refresh(force=True):
                logger.error("Refreshing blog articles failed")
                return 1
            for year, articles in sorted(blog.get_articles().items(), reverse=True):
                print(f"{year}: {len(articles)} articles")
            return 0

        blog = build_blog(eager=not args.no_eager)

        if args.command == "list":
            for year, articles in sorted(blog.get_articles().items(), reverse=True):
                print(year)
                for article in articles:
                    print(f"  {format_article(article)}")
        elif args.command == "latest":
            for article in blog.get_latest_articles(args.n):
                print(format_article(article))
        elif args.command == "show":
            article = blog.get_article(args.article) or blog.get_article_by_slug(args.article)
            if article is None:
                print(f"Article {args.article} not found", file=sys.stderr)
                return 1
            print(article.title)
            print(f"{article.published:%Y-%m-%d}")
            print()
            print(article.latest_content.content if article.latest_content else '')
        return 0
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
