"""
Error types raised by the feed system.
"""
from typing import Optional


class UpstreamUnavailable(Exception):
    """A collaborator (BigQuery, Redis, ...) could not serve a request."""

    def __init__(self, source: str, message: str, user_id: Optional[str] = None,
                 content_id: Optional[str] = None):
        self.source = source
        self.user_id = user_id
        self.content_id = content_id

        context = []
        if user_id:
            context.append(f"user={user_id}")
        if content_id:
            context.append(f"content={content_id}")
        suffix = f" ({', '.join(context)})" if context else ""
        super().__init__(f"{source}: {message}{suffix}")


class ScorerUnavailable(UpstreamUnavailable):
    """Collaborative scoring failed; callers treat this as zero candidates."""

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__('collaborative_scorer', message, user_id=user_id)


class InvalidCursor(ValueError):
    """A pagination cursor could not be parsed."""
