"""fsmlens/kernel/fsm.py — Effect status finite state machine."""
from __future__ import annotations
from fsmlens.models.errors import InvalidEffectTransitionError
from fsmlens.models.types import EffectState, EffectStatus

_VALID: dict[EffectState, set[EffectState]] = {
    EffectState.IDLE:      {EffectState.PENDING},
    EffectState.PENDING:   {EffectState.PENDING, EffectState.RESOLVED,
                            EffectState.CANCELLED},
    EffectState.RESOLVED:  {EffectState.PENDING},
    EffectState.CANCELLED: {EffectState.PENDING},
}


def allowed_targets(state: EffectState) -> frozenset[EffectState]:
    return frozenset(_VALID.get(state, set()))


def is_valid_transition(current: EffectStatus, target: EffectStatus) -> bool:
    if target.state not in _VALID.get(current.state, set()):
        return False
    # A settlement must name the effect that is pending.
    if current.state == EffectState.PENDING and target.is_settled:
        return current.name == target.name
    return True


def validate_transition(current: EffectStatus, target: EffectStatus) -> EffectStatus:
    """Return ``target`` if ``current -> target`` is legal, else raise."""
    if not is_valid_transition(current, target):
        raise InvalidEffectTransitionError(current.label, target.label)
    return target
