"""API routes."""

from ruddit_core.api.routes import auth, comments, metrics, posts, search

__all__ = ["auth", "comments", "metrics", "posts", "search"]
