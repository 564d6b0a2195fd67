"""HTTP transport shared by strategies and collaborators."""

from scoutcore.transport.http_client import RETRY_STATUSES, HttpClient

__all__ = ["HttpClient", "RETRY_STATUSES"]
