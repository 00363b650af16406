"""Delivery gateways, one per external channel."""

from infrastructure.notifications.channels.base import ChannelGateway
from infrastructure.notifications.channels.email import EmailGateway
from infrastructure.notifications.channels.push import PushGateway
from infrastructure.notifications.channels.sms import SmsGateway, normalize_phone_number

__all__ = [
    "ChannelGateway",
    "EmailGateway",
    "PushGateway",
    "SmsGateway",
    "normalize_phone_number",
]
