"""
fsmlens/kernel/manager.py — The history reducer.

Owns the instance id → InstanceRecord map. Every entry point either publishes a
new snapshot and notifies subscribers, or leaves the current snapshot untouched.

Invariants:
  - Subscribers always receive a complete read-only snapshot, never a partial update.
  - History is prepend-only; effect notifications replace exactly one StateEntry.
  - Mutation + notify is one critical section. Re-entrant calls are rejected.
  - Lenient mode never raises on a precondition violation; it logs and no-ops.
"""
from __future__ import annotations
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import replace
from types import MappingProxyType
from typing import Any
from fsmlens.kernel.fsm import validate_transition
from fsmlens.kernel.registry import ObserverRegistry, Snapshot, Subscriber, Subscription
from fsmlens.logging_setup import get_logger
from fsmlens.models.errors import (
    FSMLensError, InvalidEffectTransitionError, MissingStateEntryError,
    NotificationFormatError, ReentrantCallError, UnknownInstanceError,
)
from fsmlens.models.types import (
    EffectSettled, EffectStarted, EffectStatus, EventDispatched, EventEntry,
    HistoryEntry, InstanceRecord, LensConfig, Notification, NotificationType,
    StateEntered, StateEntry, TransitionsUpdated, contexts_equal,
    debug_transitions, is_cancellation, state_label,
)

_log = get_logger("fsmlens.manager")


class HistoryManager:
    """Synchronous history reducer. Thread-safe, not re-entrant."""

    def __init__(self, config: LensConfig | None = None) -> None:
        self._config = config or LensConfig()
        self._registry = ObserverRegistry(strict=self._config.strict)
        self._states: Snapshot = MappingProxyType({})
        self._lock = threading.RLock()
        self._active_operation: str | None = None

    @property
    def config(self) -> LensConfig:
        return self._config

    @property
    def states(self) -> Snapshot:
        return self._states

    def get(self, instance_id: str) -> InstanceRecord | None:
        return self._states.get(instance_id)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    # ── Observers ─────────────────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Subscription:
        return self._registry.subscribe(callback)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self._registry.unsubscribe(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._registry)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def mount(self, instance_id: str, context: Any,
              trigger_transitions: Callable[[], None] | None = None,
              transitions: Mapping | None = None) -> None:
        """Start tracking an instance. Overwrites any existing record."""
        with self._critical("mount"):
            previous = self._states.get(instance_id)
            if previous is not None and previous.is_mounted:
                _log.warning("instance_remounted", extra={"instance_id": instance_id})
            if transitions is None:
                transitions = debug_transitions(context)
            record = InstanceRecord(
                is_mounted=True,
                history=(StateEntry(context),),
                transitions=transitions if transitions is not None else MappingProxyType({}),
                trigger_transitions=trigger_transitions,
            )
            _log.info("instance_mounted",
                      extra={"instance_id": instance_id, "state": state_label(context)})
            self._commit(instance_id, record)

    def dispose(self, instance_id: str) -> None:
        """Mark an instance unmounted. Its history is retained."""
        with self._critical("dispose"):
            record = self._lookup(instance_id, "dispose")
            if record is None:
                return
            _log.info("instance_disposed", extra={
                "instance_id": instance_id, "history_len": len(record.history)})
            self._commit(instance_id, replace(record, is_mounted=False))

    # ── Notifications ─────────────────────────────────────────────────────────

    def on_state_entered(self, instance_id: str, context: Any) -> None:
        with self._critical("state"):
            record = self._lookup(instance_id, "state")
            if record is None:
                return
            latest = record.latest
            # Mount records the current context and the first update reports it again.
            if isinstance(latest, StateEntry) and contexts_equal(latest.context, context):
                _log.debug("duplicate_state_discarded", extra={
                    "instance_id": instance_id, "state": state_label(context)})
                return
            self._commit(instance_id, self._prepend(record, StateEntry(context)))

    def on_transitions_updated(self, instance_id: str, transitions: Mapping) -> None:
        with self._critical("transitions"):
            record = self._lookup(instance_id, "transitions")
            if record is None:
                return
            self._commit(instance_id, replace(record, transitions=transitions))

    def on_event_dispatched(self, instance_id: str, event: Any, ignored: bool = False) -> None:
        with self._critical("dispatch"):
            record = self._lookup(instance_id, "dispatch")
            if record is None:
                return
            self._commit(instance_id, self._prepend(record, EventEntry(event, ignored)))

    def on_effect_started(self, instance_id: str, name: str) -> None:
        """Mark the newest StateEntry's effect as PENDING(name)."""
        with self._critical("exec"):
            record = self._lookup(instance_id, "exec")
            if record is None:
                return
            index = _find_state_entry(record.history)
            if index is None:
                self._violation(MissingStateEntryError(instance_id), "state_entry_missing",
                                instance_id=instance_id, notification="exec", effect=name)
                return
            self._patch_effect(instance_id, record, index, EffectStatus.pending(name))

    def on_effect_settled(self, instance_id: str, state: str, name: str, result: Any) -> None:
        """Settle the effect on the newest StateEntry for ``state``.

        The machine may have left ``state`` before the effect settled, so the
        entry is found by label rather than by recency.
        """
        with self._critical("exec-resolved"):
            record = self._lookup(instance_id, "exec-resolved")
            if record is None:
                return
            index = _find_state_entry(record.history, state)
            if index is None:
                self._violation(MissingStateEntryError(instance_id, state), "state_entry_missing",
                                instance_id=instance_id, notification="exec-resolved",
                                state=state, effect=name)
                return
            target = (EffectStatus.cancelled(name) if is_cancellation(result)
                      else EffectStatus.resolved(name, result))
            self._patch_effect(instance_id, record, index, target)

    def on_message(self, instance_id: str, notification: Notification) -> None:
        """Route a decoded notification to its entry point."""
        kind = getattr(notification, "kind", None)
        if kind == NotificationType.STATE_ENTERED:
            assert isinstance(notification, StateEntered)
            self.on_state_entered(instance_id, notification.context)
        elif kind == NotificationType.TRANSITIONS_UPDATED:
            assert isinstance(notification, TransitionsUpdated)
            self.on_transitions_updated(instance_id, notification.transitions)
        elif kind == NotificationType.EVENT_DISPATCHED:
            assert isinstance(notification, EventDispatched)
            self.on_event_dispatched(instance_id, notification.event, notification.ignored)
        elif kind == NotificationType.EFFECT_STARTED:
            assert isinstance(notification, EffectStarted)
            self.on_effect_started(instance_id, notification.name)
        elif kind == NotificationType.EFFECT_SETTLED:
            assert isinstance(notification, EffectSettled)
            self.on_effect_settled(instance_id, notification.state, notification.name,
                                   notification.result)
        else:
            raise NotificationFormatError(f"Unsupported notification: {notification!r}")

    # ── Internals ─────────────────────────────────────────────────────────────

    @contextmanager
    def _critical(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._active_operation is not None:
                _log.error("reentrant_call_rejected", extra={
                    "operation": operation, "notification": self._active_operation})
                raise ReentrantCallError(operation)
            self._active_operation = operation
            try:
                yield
            finally:
                self._active_operation = None

    def _lookup(self, instance_id: str, operation: str) -> InstanceRecord | None:
        record = self._states.get(instance_id)
        if record is None:
            self._violation(UnknownInstanceError(instance_id), "unknown_instance",
                            instance_id=instance_id, notification=operation)
        return record

    def _violation(self, error: FSMLensError, event: str, **extra: Any) -> None:
        if self._config.strict:
            raise error
        _log.warning(event, extra={**extra, "error": str(error)})

    def _prepend(self, record: InstanceRecord, entry: HistoryEntry) -> InstanceRecord:
        history = (entry,) + record.history
        limit = self._config.history_limit
        if limit is not None and len(history) > limit:
            history = history[:limit]
        return replace(record, history=history)

    def _patch_effect(self, instance_id: str, record: InstanceRecord, index: int,
                      target: EffectStatus) -> None:
        entry = record.history[index]
        assert isinstance(entry, StateEntry)
        try:
            validate_transition(entry.effect, target)
        except InvalidEffectTransitionError as exc:
            if self._config.strict:
                raise
            _log.warning("unexpected_effect_transition", extra={
                "instance_id": instance_id, "state": entry.state,
                "from_status": exc.from_state, "to_status": exc.to_state})
        history = record.history[:index] + (entry.with_effect(target),) + record.history[index + 1:]
        self._commit(instance_id, replace(record, history=history))

    def _commit(self, instance_id: str, record: InstanceRecord) -> None:
        states = dict(self._states)
        states[instance_id] = record
        self._states = MappingProxyType(states)
        self._registry.notify(self._states)


def _find_state_entry(history: tuple, state: str | None = None) -> int | None:
    """Index of the newest StateEntry, optionally restricted to one state label."""
    for i, entry in enumerate(history):
        if isinstance(entry, StateEntry) and (state is None or entry.state == state):
            return i
    return None
