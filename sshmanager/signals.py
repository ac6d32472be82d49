"""Lightweight signal helpers used to announce model changes.

Consumers subscribe to registry-level events with ``connect`` and the model
fires them with ``emit`` after a mutation has been applied.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List

logger = logging.getLogger(__name__)


class Signal:
    """Simple signal with ``connect``/``disconnect``/``emit``."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._subscribers: List[Callable[..., Any]] = []

    def connect(self, callback: Callable[..., Any]) -> None:
        """Register a slot to be invoked when the signal fires."""

        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def disconnect(self, callback: Callable[..., Any]) -> None:
        """Remove a previously registered slot if present."""

        try:
            self._subscribers.remove(callback)
        except ValueError:
            return

    def emit(self, *args: Any, **kwargs: Any) -> None:
        """Invoke all connected slots with the provided arguments."""

        for callback in list(self._subscribers):
            callback(*args, **kwargs)

    def __len__(self) -> int:
        return len(self._subscribers)


class SignalGroup:
    """Named collection of signals, addressed by their dashed names."""

    def __init__(self, names: Iterable[str]):
        self._signals: Dict[str, Signal] = {name: Signal(name) for name in names}

    def __getitem__(self, name: str) -> Signal:
        return self._signals[name]

    def __contains__(self, name: str) -> bool:
        return name in self._signals

    def names(self) -> List[str]:
        return list(self._signals)

    def connect(self, name: str, callback: Callable[..., Any]) -> None:
        self._signals[name].connect(callback)

    def disconnect(self, name: str, callback: Callable[..., Any]) -> None:
        self._signals[name].disconnect(callback)

    def emit(self, name: str, *args: Any) -> None:
        logger.debug("Emitting %s", name)
        self._signals[name].emit(*args)


REGISTRY_SIGNALS = (
    "host-added",
    "host-removed",
    "host-updated",
    "group-added",
    "group-removed",
    "group-updated",
    "registry-reloaded",
    "host-test-started",
    "host-test-finished",
)


class RegistrySignals(SignalGroup):
    """Centralised signal collection for registry lifecycle events."""

    def __init__(self):
        super().__init__(REGISTRY_SIGNALS)
