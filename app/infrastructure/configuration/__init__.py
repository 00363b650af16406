"""Configuration for the notifications backend.

Settings are grouped into sections (``aws``, ``fcm``, ``sms``, ``notify``,
``dispatch``, ``server``), each a pydantic-settings model reading its own
environment variables. Obtain the shared instance through
``infrastructure.services.get_settings``.
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.infrastructure.dispatch import DispatchSettings

__all__ = ["Settings", "DispatchSettings"]
