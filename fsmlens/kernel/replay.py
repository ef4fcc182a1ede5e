"""fsmlens/kernel/replay.py — Feed a recorded JSONL notification stream through a HistoryManager."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from fsmlens.kernel.manager import HistoryManager
from fsmlens.logging_setup import get_logger
from fsmlens.models.errors import NotificationFormatError
from fsmlens.models.types import (
    Dispose,
    LifecycleType,
    Mount,
    Notification,
    notification_from_dict,
)

_log = get_logger("fsmlens.replay")

Message = Mount | Dispose | Notification


def decode_line(data: Any, line: int | None = None) -> tuple[str, Message]:
    """Decode one recorded line into ``(instance_id, message)``."""
    if not isinstance(data, Mapping):
        raise NotificationFormatError(f"expected an object, got {type(data).__name__}", line)
    instance_id = data.get("id")
    if not isinstance(instance_id, str) or not instance_id:
        raise NotificationFormatError("'id' must be a non-empty str", line)

    raw = data.get("type")
    if raw == LifecycleType.MOUNT.value:
        if "context" not in data:
            raise NotificationFormatError("mount: required field 'context' is missing", line)
        return instance_id, Mount(context=data["context"], transitions=data.get("transitions"))
    if raw == LifecycleType.DISPOSE.value:
        return instance_id, Dispose()
    try:
        return instance_id, notification_from_dict(data)
    except NotificationFormatError as exc:
        raise NotificationFormatError(str(exc), line) from exc


def iter_messages(lines: Iterable[str]) -> Iterator[tuple[int, str, Message]]:
    """Yield ``(line_number, instance_id, message)``; blank and ``#`` lines are skipped."""
    for number, text in enumerate(lines, start=1):
        text = text.strip()
        if not text or text.startswith("#"):
            continue
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise NotificationFormatError(f"invalid JSON: {exc.msg}", number) from exc
        instance_id, message = decode_line(data, number)
        yield number, instance_id, message


def apply_message(manager: HistoryManager, instance_id: str, message: Message) -> None:
    if isinstance(message, Mount):
        manager.mount(instance_id, message.context, transitions=message.transitions)
    elif isinstance(message, Dispose):
        manager.dispose(instance_id)
    else:
        manager.on_message(instance_id, message)


def replay(manager: HistoryManager, lines: Iterable[str]) -> int:
    """Apply every recorded message in order. Returns the number applied."""
    count = 0
    for _, instance_id, message in iter_messages(lines):
        apply_message(manager, instance_id, message)
        count += 1
    _log.info("replay_complete", extra={"count": count, "subscribers": manager.subscriber_count})
    return count
