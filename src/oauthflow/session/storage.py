"""セッションの永続化先（キー・バリューストア）を提供する。"""

from __future__ import annotations

import json
import os
from pathlib import Path
import threading
from typing import Protocol
import warnings

import keyring
from keyring.errors import KeyringError


class KeyValueStore(Protocol):
    """アカウントIDをキーにシリアライズ済みセッションを保存するストア。"""

    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...


class MemoryStore:
    """プロセス内のみで保持するストア。テストや一時セッション向け。"""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value


class KeyringStore:
    """OSのキーリングにセッションを保存する。

    キーリングが使えない環境ではローカルファイルに切り替える。
    """

    def __init__(self, keyring_service: str = "oauthflow", fallback_path: Path | None = None) -> None:
        """KeyringStoreを初期化する。

        Args:
            keyring_service: keyringに保存する際のサービス名。
            fallback_path: keyringが使えない場合の保存先。
        """

        self._keyring_service = keyring_service
        self._fallback_path = fallback_path or Path.home() / ".oauthflow" / "sessions.json"
        self._use_keyring = True
        self._file_lock = threading.Lock()

    @property
    def uses_keyring(self) -> bool:
        return self._use_keyring

    def put(self, key: str, value: str) -> None:
        """セッションを保存する。

        Args:
            key: アカウントID。
            value: シリアライズ済みセッション。
        """

        if self._use_keyring:
            try:
                keyring.set_password(self._keyring_service, key, value)
                return
            except KeyringError as exc:
                self._switch_to_fallback(exc)

        with self._file_lock:
            entries = self._read_fallback_entries()
            entries[key] = value
            self._write_fallback_entries(entries)

    def get(self, key: str) -> str | None:
        """セッションを取得する。

        Args:
            key: アカウントID。

        Returns:
            シリアライズ済みセッション。存在しない場合はNone。
        """

        if self._use_keyring:
            try:
                return keyring.get_password(self._keyring_service, key)
            except KeyringError as exc:
                self._switch_to_fallback(exc)

        with self._file_lock:
            return self._read_fallback_entries().get(key)

    def _switch_to_fallback(self, exc: Exception) -> None:
        if self._use_keyring:
            warnings.warn(
                f"keyringが利用できないため、ローカルファイルに保存します: {exc}",
                RuntimeWarning,
                stacklevel=3,
            )
            self._use_keyring = False

    def _read_fallback_entries(self) -> dict[str, str]:
        if not self._fallback_path.exists():
            return {}

        self._ensure_fallback_permissions(self._fallback_path)
        try:
            with self._fallback_path.open("r", encoding="utf-8") as file:
                data = json.load(file)
        except json.JSONDecodeError:
            warnings.warn(
                "セッション保存ファイルの形式が不正です。空として扱います。",
                RuntimeWarning,
                stacklevel=3,
            )
            return {}

        if not isinstance(data, dict):
            return {}

        return {str(key): str(value) for key, value in data.items()}

    def _write_fallback_entries(self, entries: dict[str, str]) -> None:
        self._fallback_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with self._fallback_path.open("w", encoding="utf-8") as file:
            json.dump(entries, file, ensure_ascii=False, indent=2)
        self._ensure_fallback_permissions(self._fallback_path)

    def _ensure_fallback_permissions(self, path: Path) -> None:
        if path.exists():
            os.chmod(path, 0o600)
