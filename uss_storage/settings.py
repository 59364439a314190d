from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import dataclass
import json
from pathlib import Path

from .client import DEFAULT_ENDPOINT


@dataclass
class AppSettings:
    """Simple container for persistent settings."""

    list_limit: int = 50
    timeout: float = 60.0
    endpoint: str = DEFAULT_ENDPOINT


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pyuss_settings.json"
        self._path = Path(storage_path)

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()

        try:
            list_limit = int(data.get("list_limit", AppSettings.list_limit))
        except (TypeError, ValueError):
            list_limit = AppSettings.list_limit
        if list_limit <= 0:
            list_limit = AppSettings.list_limit

        try:
            timeout = float(data.get("timeout", AppSettings.timeout))
        except (TypeError, ValueError):
            timeout = AppSettings.timeout
        if timeout <= 0:
            timeout = AppSettings.timeout

        endpoint = data.get("endpoint")
        if not isinstance(endpoint, str) or not endpoint.strip():
            endpoint = AppSettings.endpoint

        return AppSettings(list_limit=list_limit, timeout=timeout, endpoint=endpoint.strip())

    def save(self, settings: AppSettings) -> None:
        payload = {
            "list_limit": max(int(settings.list_limit), 1),
            "timeout": max(float(settings.timeout), 1.0),
            "endpoint": settings.endpoint or DEFAULT_ENDPOINT,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
