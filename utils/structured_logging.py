"""Structured logging for the Flask app: JSON or plain lines with request context."""
import json
import logging
from typing import Any, Dict

from flask import Flask, g, has_request_context, request

from utils import clock


class StructuredFormatter(logging.Formatter):
    def __init__(self, as_json: bool = True) -> None:
        super().__init__()
        self.as_json = as_json

    def format(self, record: logging.LogRecord) -> str:
        payload = _record_payload(record)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if self.as_json:
            return json.dumps(payload, ensure_ascii=True, default=str)
        return _format_plain(payload)


def _format_plain(payload: Dict[str, Any]) -> str:
    parts = [f"[{payload['level']}]", payload.get("msg", "").strip()]
    for key in ("request_id", "method", "route"):
        value = payload.get(key)
        if value:
            parts.append(f"{key}={value}")
    if payload.get("exception"):
        parts.append("\n" + payload["exception"])
    return " ".join(parts)


def _record_payload(record: logging.LogRecord) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "ts": clock.utcnow().isoformat() + "Z",
        "level": record.levelname,
        "logger": record.name,
        "msg": record.getMessage(),
    }
    if has_request_context():
        payload["request_id"] = getattr(g, "request_id", None)
        payload["route"] = request.path
        payload["method"] = request.method
    return {k: v for k, v in payload.items() if v is not None}


def configure_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    app.logger.setLevel(getattr(logging, level_name, logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(as_json=app.config.get("LOG_FORMAT", "json").lower() == "json"))

    app.logger.handlers.clear()
    app.logger.addHandler(handler)
