"""Business logic services package with public service helpers."""

from .webhook_service import (
    DeliveryResult,
    WebhookDeliveryConfig,
    WebhookService,
    get_webhook_service,
    register_webhook_listener,
    reset_webhook_service_for_tests,
)

__all__ = [
    "DeliveryResult",
    "WebhookDeliveryConfig",
    "WebhookService",
    "get_webhook_service",
    "register_webhook_listener",
    "reset_webhook_service_for_tests",
]
