from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ticketdesk.infrastructure.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE = "ticketdesk"


@dataclass
class MongoClientManager:
    uri: str
    enabled: bool
    _client: Any = None
    _last_error: str | None = None

    def connect(self) -> None:
        if not self.enabled:
            return

        if "localhost" in self.uri or "127.0.0.1" in self.uri:
            logger.warning("mongo_localhost_uri", uri=self.uri)

        try:
            from pymongo import MongoClient

            self._client = MongoClient(self.uri, serverSelectionTimeoutMS=2000)
            self._client.admin.command("ping")
            self._last_error = None
            logger.info("mongo_connected")
        except Exception as exc:
            self._client = None
            self._last_error = str(exc)
            logger.error("mongo_connect_failed", uri=self.uri, error=str(exc))

    def disconnect(self) -> None:
        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
        self._client = None

    def database(self) -> Any | None:
        client = self._client
        if client is None:
            return None
        # falls back to DEFAULT_DATABASE when the URI names no database
        return client.get_default_database(DEFAULT_DATABASE)

    @property
    def status(self) -> str:
        if not self.enabled:
            return "disabled"
        if self._client is None:
            return "unavailable"
        return "connected"

    @property
    def error(self) -> str | None:
        return self._last_error

    @property
    def client(self) -> Any:
        return self._client
