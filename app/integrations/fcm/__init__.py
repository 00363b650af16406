"""Firebase Cloud Messaging integration."""

from integrations.fcm.client import FcmClient

__all__ = ["FcmClient"]
