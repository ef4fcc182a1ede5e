"""
fsmlens/models/types.py  —  All shared data contracts.
Uses stdlib dataclasses + enums. No external deps.
History records are frozen=True: changing an entry means building a new one.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar

from fsmlens.models.errors import NotificationFormatError

# Context key under which an instrumented machine exposes its transition table.
DEBUG_TRANSITIONS = "__debug_transitions__"
CANCELLED_ERROR_TYPE = "CANCELLED"

# ── Enumerations ──────────────────────────────────────────────────────────────


class EffectState(str, Enum):
    IDLE = "IDLE"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


class EntryKind(str, Enum):
    STATE = "state"
    EVENT = "event"


class NotificationType(str, Enum):
    STATE_ENTERED = "state"
    TRANSITIONS_UPDATED = "transitions"
    EVENT_DISPATCHED = "dispatch"
    EFFECT_STARTED = "exec"
    EFFECT_SETTLED = "exec-resolved"


class LifecycleType(str, Enum):
    MOUNT = "mount"
    DISPOSE = "dispose"


# ── Helpers ───────────────────────────────────────────────────────────────────


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> str:
    from datetime import datetime

    return datetime.now(UTC).isoformat()


def read_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read ``key`` from a mapping or an attribute from anything else."""
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def state_label(context: Any) -> str | None:
    return read_field(context, "state")


def debug_transitions(context: Any) -> Mapping | None:
    return read_field(context, DEBUG_TRANSITIONS)


def contexts_equal(a: Any, b: Any) -> bool:
    return a is b or a == b


def to_plain(value: Any) -> Any:
    """Convert records, results and mappings into JSON-friendly values."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


# ── Effect results ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Ok:
    value: Any = None
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {"ok": True, "value": to_plain(self.value)}


@dataclass(frozen=True)
class Err:
    error: Any = None
    ok: bool = field(default=False, init=False)

    def to_dict(self) -> dict:
        return {"ok": False, "error": to_plain(self.error)}


def is_cancellation(result: Any) -> bool:
    """True for a failed result whose error type is CANCELLED."""
    if read_field(result, "ok", True):
        return False
    return read_field(read_field(result, "error"), "type") == CANCELLED_ERROR_TYPE


# ── History ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EffectStatus:
    state: EffectState = EffectState.IDLE
    name: str | None = None
    result: Any = None

    def __post_init__(self) -> None:
        if self.state == EffectState.IDLE:
            if self.name is not None:
                raise ValueError("IDLE effect status carries no name")
        elif not self.name:
            raise ValueError(f"{self.state.value} effect status requires a name")
        if self.result is not None and self.state != EffectState.RESOLVED:
            raise ValueError(f"{self.state.value} effect status carries no result")

    @classmethod
    def idle(cls) -> EffectStatus:
        return cls()

    @classmethod
    def pending(cls, name: str) -> EffectStatus:
        return cls(EffectState.PENDING, name)

    @classmethod
    def resolved(cls, name: str, result: Any) -> EffectStatus:
        return cls(EffectState.RESOLVED, name, result)

    @classmethod
    def cancelled(cls, name: str) -> EffectStatus:
        return cls(EffectState.CANCELLED, name)

    @property
    def is_settled(self) -> bool:
        return self.state in (EffectState.RESOLVED, EffectState.CANCELLED)

    @property
    def label(self) -> str:
        if self.name is None:
            return self.state.value
        return f"{self.state.value}({self.name})"

    def to_dict(self) -> dict:
        d: dict = {"state": self.state.value}
        if self.name is not None:
            d["name"] = self.name
        if self.state == EffectState.RESOLVED:
            d["result"] = to_plain(self.result)
        return d


@dataclass(frozen=True)
class StateEntry:
    context: Any
    effect: EffectStatus = field(default_factory=EffectStatus.idle)
    recorded_at: str = field(default_factory=utcnow, compare=False)
    kind: ClassVar[EntryKind] = EntryKind.STATE

    @property
    def state(self) -> str | None:
        return state_label(self.context)

    def with_effect(self, effect: EffectStatus) -> StateEntry:
        return replace(self, effect=effect)

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "context": to_plain(self.context),
            "exec": self.effect.to_dict(),
            "recorded_at": self.recorded_at,
        }


@dataclass(frozen=True)
class EventEntry:
    event: Any
    ignored: bool = False
    recorded_at: str = field(default_factory=utcnow, compare=False)
    kind: ClassVar[EntryKind] = EntryKind.EVENT

    @property
    def event_type(self) -> str | None:
        return read_field(self.event, "type")

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "event": to_plain(self.event),
            "ignored": self.ignored,
            "recorded_at": self.recorded_at,
        }


HistoryEntry = StateEntry | EventEntry


@dataclass(frozen=True)
class InstanceRecord:
    is_mounted: bool
    history: tuple = ()
    transitions: Mapping = field(default_factory=lambda: MappingProxyType({}))
    trigger_transitions: Callable[[], None] | None = None

    @property
    def latest(self) -> HistoryEntry | None:
        return self.history[0] if self.history else None

    @property
    def current_state(self) -> str | None:
        for entry in self.history:
            if isinstance(entry, StateEntry):
                return entry.state
        return None

    def to_dict(self) -> dict:
        return {
            "is_mounted": self.is_mounted,
            "history": [e.to_dict() for e in self.history],
            "transitions": to_plain(self.transitions),
        }


# ── Notifications ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StateEntered:
    context: Any
    kind: ClassVar[NotificationType] = NotificationType.STATE_ENTERED

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "context": to_plain(self.context)}


@dataclass(frozen=True)
class TransitionsUpdated:
    transitions: Mapping
    kind: ClassVar[NotificationType] = NotificationType.TRANSITIONS_UPDATED

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "transitions": to_plain(self.transitions)}


@dataclass(frozen=True)
class EventDispatched:
    event: Any
    ignored: bool = False
    kind: ClassVar[NotificationType] = NotificationType.EVENT_DISPATCHED

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "event": to_plain(self.event), "ignored": self.ignored}


@dataclass(frozen=True)
class EffectStarted:
    name: str
    kind: ClassVar[NotificationType] = NotificationType.EFFECT_STARTED

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "name": self.name}


@dataclass(frozen=True)
class EffectSettled:
    state: str
    name: str
    result: Any
    kind: ClassVar[NotificationType] = NotificationType.EFFECT_SETTLED

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "context": {"state": self.state},
            "name": self.name,
            "result": to_plain(self.result),
        }


Notification = StateEntered | TransitionsUpdated | EventDispatched | EffectStarted | EffectSettled


@dataclass(frozen=True)
class Mount:
    context: Any
    transitions: Mapping | None = None
    kind: ClassVar[LifecycleType] = LifecycleType.MOUNT


@dataclass(frozen=True)
class Dispose:
    kind: ClassVar[LifecycleType] = LifecycleType.DISPOSE


# ── Validation helpers ────────────────────────────────────────────────────────


def _require(data: Mapping, *keys: str, kind: str = "") -> None:
    for k in keys:
        if k not in data:
            raise NotificationFormatError(f"{kind}: required field {k!r} is missing")


def _validate_str(value: Any, name: str, kind: str = "") -> str:
    if not isinstance(value, str) or not value:
        raise NotificationFormatError(f"{kind}: {name} must be a non-empty str")
    return value


def notification_from_dict(d: Any) -> Notification:
    """Decode the wire form produced by the instrumentation layer."""
    if not isinstance(d, Mapping):
        raise NotificationFormatError(f"notification must be an object, got {type(d).__name__}")
    raw = d.get("type")
    try:
        kind = NotificationType(raw)
    except ValueError:
        raise NotificationFormatError(f"unknown notification type {raw!r}") from None

    if kind == NotificationType.STATE_ENTERED:
        _require(d, "context", kind=kind.value)
        return StateEntered(context=d["context"])
    if kind == NotificationType.TRANSITIONS_UPDATED:
        _require(d, "transitions", kind=kind.value)
        if not isinstance(d["transitions"], Mapping):
            raise NotificationFormatError(f"{kind.value}: transitions must be an object")
        return TransitionsUpdated(transitions=d["transitions"])
    if kind == NotificationType.EVENT_DISPATCHED:
        _require(d, "event", kind=kind.value)
        ignored = d.get("ignored", False)
        if not isinstance(ignored, bool):
            raise NotificationFormatError(f"{kind.value}: ignored must be a bool")
        return EventDispatched(event=d["event"], ignored=ignored)
    if kind == NotificationType.EFFECT_STARTED:
        _require(d, "name", kind=kind.value)
        return EffectStarted(name=_validate_str(d["name"], "name", kind.value))

    _require(d, "name", "result", kind=kind.value)
    state = d.get("state", state_label(d.get("context")))
    return EffectSettled(
        state=_validate_str(state, "context.state", kind.value),
        name=_validate_str(d["name"], "name", kind.value),
        result=d["result"],
    )


# ── Configuration ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LensConfig:
    strict: bool = False
    history_limit: int | None = None
    log_level: str = "INFO"
    log_path: str | None = None

    def __post_init__(self) -> None:
        if self.history_limit is not None and self.history_limit < 1:
            raise ValueError("history_limit must be >= 1")

    def to_dict(self) -> dict:
        return {
            "strict": self.strict,
            "history_limit": self.history_limit,
            "log_level": self.log_level,
            "log_path": self.log_path,
        }
