"""Africa's Talking SMS integration."""

from integrations.africastalking.client import AfricasTalkingClient

__all__ = ["AfricasTalkingClient"]
