from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import time
import uuid

OPEN_SESSION_QUESTION = 'Open Buzzer Session'

PHASE_IDLE = 'idle'
PHASE_COUNTDOWN = 'countdown'
PHASE_ACTIVE = 'active'
PHASE_LOCKED = 'locked'


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Player:
    id: str
    name: str
    is_host: bool = False
    buzzer_pressed: bool = False
    buzzer_timestamp: Optional[float] = None
    # acceptance order within the round; breaks timestamp ties
    buzz_seq: Optional[int] = None

    def press(self, timestamp: float, seq: int) -> None:
        self.buzzer_pressed = True
        self.buzzer_timestamp = timestamp
        self.buzz_seq = seq

    def clear_buzzer(self) -> None:
        self.buzzer_pressed = False
        self.buzzer_timestamp = None
        self.buzz_seq = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'isHost': self.is_host,
            'buzzerPressed': self.buzzer_pressed,
            'buzzerTimestamp': self.buzzer_timestamp,
        }


@dataclass
class Session:
    """Live state of one hosted buzzer match.

    Only the session engine mutates these records. Everything handed to
    the transport layer is a ``to_dict()`` snapshot taken under the
    engine lock.
    """

    id: str
    code: str
    name: str
    host_player_id: str
    # insertion order is join order; host handoff relies on it
    players: Dict[str, Player] = field(default_factory=dict)
    current_question: str = ''
    time_limit_seconds: int = 30
    question_start_time: Optional[float] = None
    is_active: bool = False
    buzzers_locked: bool = False
    countdown_active: bool = False
    countdown_start_time: Optional[float] = None
    countdown_duration_seconds: Optional[int] = None
    created_at: float = field(default_factory=time.time)

    # Runtime bookkeeping, never serialized
    countdown_remaining: int = field(default=0, repr=False)
    countdown_timer: Any = field(default=None, repr=False, compare=False)
    expiry_timer: Any = field(default=None, repr=False, compare=False)
    buzz_counter: int = field(default=0, repr=False)

    @property
    def host(self) -> Optional[Player]:
        return self.players.get(self.host_player_id)

    @property
    def phase(self) -> str:
        if self.countdown_active:
            return PHASE_COUNTDOWN
        if self.is_active:
            return PHASE_ACTIVE
        if self.buzzers_locked:
            return PHASE_LOCKED
        return PHASE_IDLE

    def clear_buzzers(self) -> None:
        for player in self.players.values():
            player.clear_buzzer()
        self.buzz_counter = 0

    def start_countdown(self, now: float, duration: int) -> None:
        self.is_active = False
        self.question_start_time = None
        self.countdown_active = True
        self.countdown_start_time = now
        self.countdown_duration_seconds = duration
        self.countdown_remaining = duration

    def end_countdown(self) -> None:
        self.countdown_active = False
        self.countdown_start_time = None
        self.countdown_duration_seconds = None
        self.countdown_remaining = 0

    def activate(self, now: float) -> None:
        self.end_countdown()
        self.is_active = True
        self.question_start_time = now
        self.buzzers_locked = False

    def lock_round(self) -> None:
        self.buzzers_locked = True
        self.is_active = False
        self.question_start_time = None

    def stop_round(self) -> None:
        self.end_countdown()
        self.is_active = False
        self.question_start_time = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'hostPlayerId': self.host_player_id,
            'players': {pid: p.to_dict() for pid, p in self.players.items()},
            'currentQuestion': self.current_question,
            'timeLimitSeconds': self.time_limit_seconds,
            'questionStartTime': self.question_start_time,
            'isActive': self.is_active,
            'buzzersLocked': self.buzzers_locked,
            'countdownActive': self.countdown_active,
            'countdownStartTime': self.countdown_start_time,
            'countdownDurationSeconds': self.countdown_duration_seconds,
            'phase': self.phase,
            'createdAt': self.created_at,
        }


@dataclass(frozen=True)
class BuzzerEvent:
    player_id: str
    timestamp: float
    rank: int

    def to_dict(self) -> Dict[str, Any]:
        return {'playerId': self.player_id, 'timestamp': self.timestamp, 'rank': self.rank}
