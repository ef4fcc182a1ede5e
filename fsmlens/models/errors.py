"""fsmlens/models/errors.py — Typed exception hierarchy."""
from __future__ import annotations


class FSMLensError(Exception): pass

class ValidationError(FSMLensError): pass

class NotificationFormatError(ValidationError):
    def __init__(self, message: str, line: int | None = None) -> None:
        super().__init__(message if line is None else f"line {line}: {message}")
        self.line = line

class LookupFailure(FSMLensError): pass

class UnknownInstanceError(LookupFailure):
    def __init__(self, instance_id: str) -> None:
        super().__init__(f"No record for instance {instance_id!r}")
        self.instance_id = instance_id

class MissingStateEntryError(LookupFailure):
    def __init__(self, instance_id: str, state: str | None = None) -> None:
        where = "any state" if state is None else f"state {state!r}"
        super().__init__(f"Instance {instance_id!r} has no history entry for {where}")
        self.instance_id = instance_id
        self.state = state

class StateMachineError(FSMLensError): pass

class InvalidEffectTransitionError(StateMachineError):
    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(f"Invalid effect transition: {from_state} → {to_state}")
        self.from_state = from_state
        self.to_state = to_state

class ConcurrencyError(FSMLensError): pass

class ReentrantCallError(ConcurrencyError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"Re-entrant call to {operation!r} while notifying subscribers")
        self.operation = operation

class ConfigError(FSMLensError): pass
