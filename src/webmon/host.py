"""
Host capabilities injected into the pipeline.

The monitor never reaches for the wall clock, the filesystem or the network
directly; it is handed a ``Clock``, a ``PersistentStore`` and a
``NetworkSender``. The defaults here are what a normal Python process uses;
tests pass fakes.
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

import httpx
from loguru import logger

from .errors import CollectorRejected, StorageUnavailable

JSON_HEADERS = {"Content-Type": "application/json"}


class Clock(Protocol):
    def now_ms(self) -> int:
        """Current epoch time in milliseconds."""
        ...


class PersistentStore(Protocol):
    """Small string key/value medium (localStorage-like).

    Implementations raise ``StorageUnavailable`` (or ``OSError``) when the
    medium cannot be used; callers are expected to degrade.
    """

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class NetworkSender(Protocol):
    """The three delivery primitives used by the engine."""

    @property
    def supports_beacon(self) -> bool: ...

    def beacon(self, url: str, body: bytes, headers: Mapping[str, str]) -> bool:
        """Fire-and-forget send; must not block. False means not queued."""
        ...

    async def post(
        self, url: str, body: bytes, headers: Mapping[str, str], timeout: float
    ) -> None:
        """Primary request. Raises on any failure."""
        ...

    async def post_legacy(
        self, url: str, body: bytes, headers: Mapping[str, str], timeout: float
    ) -> None:
        """Compatibility request used as a last resort. Raises on failure."""
        ...


# --------------------------- clocks


class SystemClock:
    def now_ms(self) -> int:
        return int(time.time() * 1000)


# --------------------------- stores


class MemoryStore:
    """In-process store. Lost on restart; handy for tests and short-lived hosts."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self._quota = quota_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._quota is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self._quota:
                raise StorageUnavailable("quota exceeded")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileStore:
    """One file per key under ``directory``.

    Writes go through a temp file + ``os.replace`` so a crash mid-write never
    leaves a half-written entry behind.
    """

    def __init__(self, directory: str | Path, *, mkdirs: bool = True):
        self._dir = Path(directory)
        if mkdirs:
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                # writes report StorageUnavailable until the directory exists
                logger.warning(f"Store directory {self._dir} unusable: {exc}")

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        p = self._path(key)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        if not self._dir.is_dir():
            raise StorageUnavailable(f"store directory missing: {self._dir}")
        p = self._path(key)
        tmp = p.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, p)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


# --------------------------- network


class HttpxNetworkSender:
    """Default sender backed by httpx.

    - ``beacon``: posts from a non-daemon thread, so interpreter shutdown waits
      for it (the closest thing to navigator.sendBeacon in a Python process).
    - ``post``: ``httpx.AsyncClient``.
    - ``post_legacy``: blocking ``httpx.Client`` on a worker thread.
    """

    def __init__(
        self,
        *,
        verify: bool = True,
        beacon_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._verify = verify
        self._beacon_timeout = beacon_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def supports_beacon(self) -> bool:
        return True

    def beacon(self, url: str, body: bytes, headers: Mapping[str, str]) -> bool:
        hdrs = {**headers, **JSON_HEADERS}

        def _run() -> None:
            try:
                with httpx.Client(timeout=self._beacon_timeout, verify=self._verify) as c:
                    c.post(url, content=body, headers=hdrs)
            except Exception as exc:  # noqa: BLE001
                # nobody is left to retry a beacon
                logger.debug(f"Beacon failed (ignored): {type(exc).__name__}: {exc}")

        try:
            threading.Thread(target=_run, name="webmon-beacon", daemon=False).start()
        except RuntimeError:
            # interpreter is finalizing; threads can no longer be started
            return False
        return True

    async def post(
        self, url: str, body: bytes, headers: Mapping[str, str], timeout: float
    ) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(verify=self._verify, transport=self._transport)
        resp = await self._client.post(
            url, content=body, headers={**headers, **JSON_HEADERS}, timeout=timeout
        )
        if resp.status_code >= 400:
            raise CollectorRejected(resp.status_code, resp.text)

    async def post_legacy(
        self, url: str, body: bytes, headers: Mapping[str, str], timeout: float
    ) -> None:
        def _blocking() -> None:
            with httpx.Client(timeout=timeout, verify=self._verify) as c:
                resp = c.post(url, content=body, headers={**headers, **JSON_HEADERS})
            if resp.status_code >= 400:
                raise CollectorRejected(resp.status_code, resp.text)

        await asyncio.to_thread(_blocking)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
