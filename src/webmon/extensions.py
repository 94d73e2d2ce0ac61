"""
Extension registry.

Extensions are named, independently installable units (framework adapters,
custom producers) that get a handle to the ``Monitor`` when installed. The
registry belongs to one monitor instance; there is no process-wide registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol

from loguru import logger

if TYPE_CHECKING:
    from .monitor import Monitor


class Extension(Protocol):
    """Anything with a ``name`` and an ``install(monitor)`` method.

    ``uninstall(monitor)`` is optional.
    """

    name: str

    def install(self, monitor: "Monitor") -> None: ...


@dataclass(frozen=True)
class ExtensionRecord:
    name: str
    install: Callable[["Monitor"], Any]
    uninstall: Optional[Callable[["Monitor"], Any]] = None


@dataclass(frozen=True)
class FunctionExtension:
    """Build an extension from plain callables.

    Example:
        monitor.use(FunctionExtension("route-tracker", install=hook, uninstall=unhook))
    """

    name: str
    install: Callable[["Monitor"], Any]
    uninstall: Optional[Callable[["Monitor"], Any]] = None


class ExtensionRegistry:
    """Tracks installed extensions for one monitor."""

    def __init__(self, monitor: "Monitor"):
        self._monitor = monitor
        self._records: Dict[str, ExtensionRecord] = {}

    def install(self, extension: Extension) -> bool:
        """Install and record ``extension``.

        Returns False if the name is taken or the install hook raised (the
        extension is then not registered).
        """
        name = getattr(extension, "name", None)
        if not name:
            logger.warning("Extension without a name ignored")
            return False
        if name in self._records:
            logger.warning(f"Extension {name} already installed")
            return False

        record = ExtensionRecord(
            name=name,
            install=extension.install,
            uninstall=getattr(extension, "uninstall", None),
        )
        try:
            record.install(self._monitor)
        except Exception as exc:
            logger.error(f"Failed to install extension {name}: {type(exc).__name__}: {exc}")
            return False

        self._records[name] = record
        logger.debug(f"Extension {name} installed")
        return True

    def uninstall(self, name: str) -> bool:
        """Run the uninstall hook (if any) and drop the record regardless."""
        record = self._records.pop(name, None)
        if record is None:
            logger.warning(f"Extension {name} not found")
            return False

        if record.uninstall is not None:
            try:
                record.uninstall(self._monitor)
            except Exception as exc:
                logger.error(f"Error uninstalling extension {name}: {type(exc).__name__}: {exc}")
        logger.debug(f"Extension {name} uninstalled")
        return True

    def uninstall_all(self) -> None:
        for name in list(self._records):
            self.uninstall(name)

    def list(self) -> List[str]:
        return list(self._records)

    def has(self, name: str) -> bool:
        return name in self._records

    def get(self, name: str) -> Optional[ExtensionRecord]:
        return self._records.get(name)

    def __len__(self) -> int:
        return len(self._records)
