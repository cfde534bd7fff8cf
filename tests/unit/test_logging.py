"""Unit tests for structured JSON logging"""

import json
import logging

from payout_gateway.config import settings
from payout_gateway.infrastructure.observability.logging import CustomJsonFormatter


def make_record(message: str) -> logging.LogRecord:
    return logging.LogRecord("payouts", logging.INFO, __file__, 1, message, None, None)


def test_formatter_uses_configured_service_name(monkeypatch):
    monkeypatch.setattr(settings, "service_name", "payout-gateway-staging")
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

    payload = json.loads(formatter.format(make_record("Payout stage completed")))

    assert payload["service"] == "payout-gateway-staging"
    assert payload["level"] == "INFO"
    assert payload["message"] == "Payout stage completed"
