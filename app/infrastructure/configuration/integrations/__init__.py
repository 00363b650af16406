"""Integration settings __init__ - exports all integration settings."""

from infrastructure.configuration.integrations.aws import AwsSettings
from infrastructure.configuration.integrations.fcm import FcmSettings
from infrastructure.configuration.integrations.sms import SmsSettings
from infrastructure.configuration.integrations.notify import NotifySettings

__all__ = [
    "AwsSettings",
    "FcmSettings",
    "SmsSettings",
    "NotifySettings",
]
