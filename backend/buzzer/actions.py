"""Host actions as closed variants.

Clients send ``{"type": ..., "data": {...}}``. ``parse_host_action`` turns
that into one of the dataclasses below so the engine can dispatch on the
type alone and never has to dig through an untyped payload.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from buzzer.exceptions import UnknownAction, ValidationError


@dataclass(frozen=True)
class SetQuestion:
    question: str
    time_limit: int
    type = 'set_question'


@dataclass(frozen=True)
class StartQuestion:
    countdown_delay: int
    type = 'start_question'


@dataclass(frozen=True)
class InstantLaunch:
    time_limit: int
    countdown_delay: int
    type = 'instant_launch'


@dataclass(frozen=True)
class StopQuestion:
    type = 'stop_question'


@dataclass(frozen=True)
class ClearBuzzers:
    type = 'clear_buzzers'


@dataclass(frozen=True)
class LockBuzzers:
    type = 'lock_buzzers'


@dataclass(frozen=True)
class UnlockBuzzers:
    type = 'unlock_buzzers'


@dataclass(frozen=True)
class RemovePlayer:
    player_id: str
    type = 'remove_player'


@dataclass(frozen=True)
class RenamePlayer:
    player_id: str
    new_name: str
    type = 'rename_player'


HostAction = Union[
    SetQuestion, StartQuestion, InstantLaunch, StopQuestion, ClearBuzzers,
    LockBuzzers, UnlockBuzzers, RemovePlayer, RenamePlayer,
]

ACTION_TYPES = (
    'set_question', 'start_question', 'instant_launch', 'stop_question', 'clear_buzzers',
    'lock_buzzers', 'unlock_buzzers', 'remove_player', 'rename_player',
)


def _int_field(data: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")
    if number != value and not isinstance(value, str):
        raise ValidationError(f"{key} must be a whole number")
    if number < minimum:
        raise ValidationError(f"{key} must be at least {minimum}")
    return number


def _str_field(data: Dict[str, Any], key: str, *, allow_blank: bool = False) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValidationError(f"{key} is required")
    value = value.strip()
    if not value and not allow_blank:
        raise ValidationError(f"{key} is required")
    return value


def parse_host_action(
    action_type: Optional[str],
    data: Optional[Dict[str, Any]] = None,
    *,
    default_time_limit: int = 30,
    default_countdown: int = 3,
) -> HostAction:
    """Build a host action from its wire form.

    Raises ``UnknownAction`` for an unrecognised type and
    ``ValidationError`` when the payload does not fit the type.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ValidationError('Action data must be an object')

    if action_type == 'set_question':
        return SetQuestion(
            question=_str_field(data, 'question', allow_blank=True),
            time_limit=_int_field(data, 'timeLimit', default_time_limit, 1),
        )
    if action_type == 'start_question':
        return StartQuestion(countdown_delay=_int_field(data, 'countdownDelay', default_countdown, 0))
    if action_type == 'instant_launch':
        return InstantLaunch(
            time_limit=_int_field(data, 'timeLimit', default_time_limit, 1),
            countdown_delay=_int_field(data, 'countdownDelay', default_countdown, 0),
        )
    if action_type == 'stop_question':
        return StopQuestion()
    if action_type == 'clear_buzzers':
        return ClearBuzzers()
    if action_type == 'lock_buzzers':
        return LockBuzzers()
    if action_type == 'unlock_buzzers':
        return UnlockBuzzers()
    if action_type == 'remove_player':
        return RemovePlayer(player_id=_str_field(data, 'playerId'))
    if action_type == 'rename_player':
        return RenamePlayer(player_id=_str_field(data, 'playerId'), new_name=_str_field(data, 'newName'))
    raise UnknownAction(action_type)
