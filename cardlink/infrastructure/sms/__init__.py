from .messaging_provider import (
    DeliveryReport,
    MessagingProvider,
    SmsProviderError,
    VonageProvider,
    VONAGE_SUCCESS_STATUS,
)

__all__ = [
    "DeliveryReport",
    "MessagingProvider",
    "SmsProviderError",
    "VonageProvider",
    "VONAGE_SUCCESS_STATUS",
]
