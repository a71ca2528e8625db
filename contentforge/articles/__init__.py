"""Generated articles and their draft / scheduled / published lifecycle."""

from contentforge.articles.models import Article, ArticleStatus, ArticleText
from contentforge.articles.store import get_article_store

__all__ = ["Article", "ArticleStatus", "ArticleText", "get_article_store"]
