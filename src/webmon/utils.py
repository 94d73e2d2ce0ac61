"""
Utility functions for webmon.

Identifier generation and small host-environment helpers.
"""

import os
import platform
import secrets
import sys
import time
from typing import Optional

from loguru import logger

from .errors import StorageUnavailable
from .host import PersistentStore

USER_ID_KEY = "webmon_user_id"

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _suffix(n: int = 9) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(n))


def generate_session_id() -> str:
    """New id per monitor instance: ``session_<epoch ms>_<random>``."""
    return f"session_{int(time.time() * 1000)}_{_suffix()}"


def generate_user_id(store: Optional[PersistentStore] = None) -> str:
    """Stable anonymous user id, remembered in ``store`` when one is given."""
    if store is not None:
        try:
            stored = store.get(USER_ID_KEY)
            if stored:
                return stored
        except (StorageUnavailable, OSError, UnicodeDecodeError) as exc:
            logger.debug(f"User id lookup failed, using an ephemeral id: {exc}")

    user_id = f"user_{int(time.time() * 1000)}_{_suffix()}"
    if store is not None:
        try:
            store.set(USER_ID_KEY, user_id)
        except (StorageUnavailable, OSError) as exc:
            logger.debug(f"User id not persisted: {exc}")
    return user_id


def default_environment() -> str:
    """Client environment string, the process analogue of a user agent."""
    return (
        f"python/{platform.python_version()} "
        f"({platform.system() or 'unknown'}; {platform.machine() or 'unknown'}) "
        f"{os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else 'python'}"
    )
