from __future__ import annotations
"""Connection profile models, credentials and persistence."""
from dataclasses import dataclass
import json
from pathlib import Path

import keyring
from keyring.errors import KeyringError

from .paths import normalize_work_dir

PROTOCOL_HMAC = "hmac"


def parse_credential(value: str) -> tuple[str, list[str]]:
    """Split ``protocol:value[:value...]`` into its protocol and values.

    Raises:
        ValueError: when the string is empty or misses a value.
    """

    protocol, sep, rest = (value or "").partition(":")
    if not protocol or not sep:
        raise ValueError("credential must look like <protocol>:<value>")
    if protocol == PROTOCOL_HMAC:
        operator, sep, password = rest.partition(":")
        if not operator or not sep or not password:
            raise ValueError("hmac credential must look like hmac:<operator>:<password>")
        return protocol, [operator, password]
    return protocol, [rest]


@dataclass
class ConnectionProfile:
    """Represents a saved USS connection."""

    name: str
    bucket: str
    operator: str
    password: str
    work_dir: str = "/"

    @property
    def credential(self) -> str:
        return f"{PROTOCOL_HMAC}:{self.operator}:{self.password}"


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = "pyuss"):
        self._service_name = service_name

    def get_secret(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        try:
            return keyring.get_password(self._service_name, profile_name) or ""
        except KeyringError:
            return ""

    def set_secret(self, profile_name: str, secret: str) -> None:
        if not profile_name:
            return
        if not secret:
            self.delete_secret(profile_name)
            return
        try:
            keyring.set_password(self._service_name, profile_name, secret)
        except KeyringError:
            return

    def delete_secret(self, profile_name: str) -> None:
        if not profile_name:
            return
        try:
            keyring.delete_password(self._service_name, profile_name)
        except KeyringError:
            return


class ProfileStorage:
    """Simple JSON-backed store for connection profiles.

    Operator passwords never hit the JSON file; they live in the keychain
    under the profile name. Files written by older versions that still carry
    a ``password`` field are migrated on load.
    """

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pyuss_connections.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> list[ConnectionProfile]:
        data = self._read_data()
        profiles: list[ConnectionProfile] = []
        sanitized: list[dict[str, str]] = []
        saw_plaintext = False
        for entry in data:
            try:
                name = entry["name"]
                bucket = entry["bucket"]
                operator = entry["operator"]
                work_dir = normalize_work_dir(entry.get("work_dir"))
                password = entry.get("password", "")
                if password:
                    saw_plaintext = True
                    self._keychain.set_secret(name, password)
                else:
                    password = self._keychain.get_secret(name)
            except (KeyError, TypeError, AttributeError):
                continue
            profiles.append(
                ConnectionProfile(
                    name=name,
                    bucket=bucket,
                    operator=operator,
                    password=password,
                    work_dir=work_dir,
                )
            )
            sanitized.append(self._serialize(profiles[-1]))
        if saw_plaintext:
            self._write_data(sanitized)
        return profiles

    def save(self, profiles: list[ConnectionProfile]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = []
        for profile in profiles:
            self._keychain.set_secret(profile.name, profile.password)
            data.append(self._serialize(profile))
        existing_names = self._load_profile_names()
        current_names = {profile.name for profile in profiles}
        for name in existing_names - current_names:
            self._keychain.delete_secret(name)
        self._write_data(data)

    def get(self, name: str) -> ConnectionProfile:
        for profile in self.load():
            if profile.name == name:
                return profile
        raise ValueError(f"Profile '{name}' does not exist")

    @staticmethod
    def _serialize(profile: ConnectionProfile) -> dict[str, str]:
        return {
            "name": profile.name,
            "bucket": profile.bucket,
            "operator": profile.operator,
            "work_dir": normalize_work_dir(profile.work_dir),
        }

    def _read_data(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _load_profile_names(self) -> set[str]:
        names = set()
        for entry in self._read_data():
            name = entry.get("name") if isinstance(entry, dict) else None
            if isinstance(name, str) and name:
                names.add(name)
        return names

    def _write_data(self, data: list[dict[str, str]]) -> None:
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
