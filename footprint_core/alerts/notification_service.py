"""Notificadores para eventos de alerta.

El motor de alertas solo emite eventos; sonido, banner o push son
responsabilidad del notificador. Ningún notificador debe bloquear ni
propagar errores hacia la ingesta.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Iterable, Optional

import requests

from .alert_models import AlertEvent

logger = logging.getLogger(__name__)

Notifier = Callable[[AlertEvent], None]


def log_notifier(event: AlertEvent) -> None:
    """Notificador por defecto: solo loguea."""
    logger.warning("[ALERT] %s", event.message)


class FanOutNotifier:
    """Entrega un evento a varios notificadores.

    Un notificador que falla no impide la entrega a los demás.
    """

    def __init__(self, notifiers: Iterable[Notifier]):
        self._notifiers = list(notifiers)

    def __call__(self, event: AlertEvent) -> None:
        for notifier in self._notifiers:
            try:
                notifier(event)
            except Exception as e:
                logger.error("[ALERT] notifier %r failed for origin=%s: %s", notifier, event.origin, e)


class WebhookNotifier:
    """Envía el evento por HTTP POST a un webhook.

    No bloquea más de `timeout` segundos si falla; solo loguea el error.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self._url = url or os.getenv("FOOTPRINT_ALERT_WEBHOOK_URL")
        self._api_key = api_key or os.getenv("FOOTPRINT_ALERT_WEBHOOK_KEY")
        self._timeout = timeout
        self._session = session or requests.Session()

    def __call__(self, event: AlertEvent) -> None:
        if not self._url:
            logger.warning("[PUSH] FOOTPRINT_ALERT_WEBHOOK_URL not configured - skipping alert push")
            return

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["X-API-Key"] = self._api_key

        try:
            response = self._session.post(
                self._url,
                json={"type": "co2_alert", **event.to_dict()},
                headers=headers,
                timeout=self._timeout,
            )
            if response.ok:
                logger.info("[PUSH] Alert push sent for origin=%s", event.origin)
            else:
                logger.warning("[PUSH] Failed to push alert: %s %s", response.status_code, response.text)
        except requests.RequestException as e:
            logger.error("[PUSH] Error pushing alert for origin=%s: %s", event.origin, e)
