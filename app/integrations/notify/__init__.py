"""GC Notify integration."""

from integrations.notify.client import NotifyClient, create_jwt_token

__all__ = ["NotifyClient", "create_jwt_token"]
