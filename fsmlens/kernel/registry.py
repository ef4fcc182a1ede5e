"""fsmlens/kernel/registry.py — Observer registry: subscribe, unsubscribe, fan out snapshots."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from fsmlens.logging_setup import get_logger
from fsmlens.models.types import InstanceRecord, new_id

_log = get_logger("fsmlens.registry")

Snapshot = Mapping[str, InstanceRecord]
Subscriber = Callable[[Snapshot], Any]


class Subscription:
    """Capability returned by subscribe(). Calling it unsubscribes."""

    __slots__ = ("_registry", "callback", "token")

    def __init__(self, registry: ObserverRegistry, callback: Subscriber, token: str) -> None:
        self._registry = registry
        self.callback = callback
        self.token = token

    @property
    def active(self) -> bool:
        return self in self._registry

    def cancel(self) -> bool:
        return self._registry.unsubscribe(self)

    def __call__(self) -> bool:
        return self.cancel()

    def __repr__(self) -> str:
        return f"Subscription(token={self.token!r}, active={self.active})"


class ObserverRegistry:
    """Subscribers are called in subscription order with the same snapshot object."""

    def __init__(self, strict: bool = False) -> None:
        self._subscriptions: list[Subscription] = []
        self._strict = strict

    def subscribe(self, callback: Subscriber) -> Subscription:
        if not callable(callback):
            raise TypeError(f"subscriber must be callable, got {type(callback).__name__}")
        sub = Subscription(self, callback, new_id())
        self._subscriptions.append(sub)
        _log.debug("subscriber_added",
                   extra={"subscriber": sub.token, "subscribers": len(self._subscriptions)})
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        for i, sub in enumerate(self._subscriptions):
            if sub is subscription:
                del self._subscriptions[i]
                _log.debug("subscriber_removed",
                           extra={"subscriber": sub.token,
                                  "subscribers": len(self._subscriptions)})
                return True
        return False

    def notify(self, snapshot: Snapshot) -> None:
        """Call every subscriber. Failures are logged; strict mode re-raises the first."""
        first_error: Exception | None = None
        # Subscribers added mid-notify wait for the next round; removed ones are skipped.
        for sub in tuple(self._subscriptions):
            if sub not in self:
                continue
            try:
                sub.callback(snapshot)
            except Exception as exc:
                _log.error("subscriber_failed", exc_info=True, extra={
                    "subscriber": sub.token, "error_type": type(exc).__name__,
                    "error": str(exc)})
                if first_error is None:
                    first_error = exc
        if first_error is not None and self._strict:
            raise first_error

    def __contains__(self, subscription: object) -> bool:
        return any(sub is subscription for sub in self._subscriptions)

    def __len__(self) -> int:
        return len(self._subscriptions)
