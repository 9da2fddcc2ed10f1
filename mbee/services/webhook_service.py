"""Outgoing webhook delivery."""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from fastapi.encoders import jsonable_encoder

from mbee import events
from mbee.config import get_config
from mbee.db import models
from mbee.db.repositories import webhooks as webhook_repo

logger = logging.getLogger(__name__)


@dataclass
class WebhookDeliveryConfig:
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "WebhookDeliveryConfig":
        return cls(timeout=get_config().webhook_timeout)


@dataclass
class DeliveryResult:
    webhook_id: str
    url: str
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status_code is not None and self.status_code < 400


class WebhookService:
    """Sends the configured HTTP requests of every outgoing webhook listening for an event."""

    def __init__(self, config: Optional[WebhookDeliveryConfig] = None) -> None:
        self._config = config or WebhookDeliveryConfig.from_env()
        self._session = requests.Session()

    def dispatch(self, event: str, payload: Any, context: events.EventContext) -> List[DeliveryResult]:
        listeners = webhook_repo.find_listeners(
            context.db,
            event,
            organization_id=context.organization_id,
            project_id=context.project_id,
            branch_id=context.branch_id,
        )
        results: List[DeliveryResult] = []
        for webhook in listeners:
            for response in webhook.responses or []:
                results.append(self._send(webhook, response, payload))
        if listeners:
            logger.info(
                "webhooks_dispatched: event=%s webhooks=%d requests=%d failed=%d",
                event, len(listeners), len(results), sum(1 for r in results if not r.ok),
            )
        return results

    def _send(self, webhook: models.Webhook, response: Dict[str, Any], payload: Any) -> DeliveryResult:
        url = response.get("url")
        method = (response.get("method") or "POST").upper()
        headers = response.get("headers") or {"Content-Type": "application/json"}
        body = response.get("data") if response.get("data") is not None else payload
        auth = response.get("auth") or None
        result = DeliveryResult(webhook_id=str(webhook.id), url=url)
        try:
            resp = self._session.request(
                method,
                url,
                headers=headers,
                data=json.dumps(jsonable_encoder(body)),
                auth=(auth["username"], auth["password"]) if auth else None,
                timeout=self._config.timeout,
            )
            result.status_code = resp.status_code
            if resp.status_code >= 400:
                logger.warning(
                    "webhook_response_error: webhook=%s url=%s status=%s",
                    webhook.id, url, resp.status_code,
                )
        except requests.RequestException as exc:
            result.error = str(exc)
            logger.warning("webhook_delivery_failed: webhook=%s url=%s error=%s", webhook.id, url, exc)
        return result


_service_lock = threading.Lock()
_service: Optional[WebhookService] = None


def get_webhook_service() -> WebhookService:
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = WebhookService()
    return _service


def reset_webhook_service_for_tests() -> None:
    global _service
    with _service_lock:
        _service = None


def _dispatch_listener(event: str, payload: Any, context: events.EventContext) -> None:
    get_webhook_service().dispatch(event, payload, context)


def register_webhook_listener() -> None:
    """Route every emitted event through outgoing webhook delivery."""
    events.on(events.ALL_EVENTS, _dispatch_listener)
