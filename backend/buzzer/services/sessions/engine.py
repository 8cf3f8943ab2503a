"""Authoritative in-memory session engine.

All session state lives in one table owned by ``SessionEngine``. Every
public method takes the engine lock for its whole duration, and so does
every timer callback, so handlers run to completion without interleaving.
Callers only ever see ``to_dict()`` snapshots taken under that lock.

Timer-driven transitions (countdown ticks, round start, round expiry,
backup sweep) are broadcast by the engine itself through the
``broadcast(session_id, message)`` callback it was given. Transitions that
a client request triggered are returned to the caller, which decides how to
fan them out.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from buzzer.actions import (
    ClearBuzzers,
    InstantLaunch,
    LockBuzzers,
    RemovePlayer,
    RenamePlayer,
    SetQuestion,
    StartQuestion,
    StopQuestion,
    UnlockBuzzers,
)
from buzzer.exceptions import (
    BuzzerError,
    InvalidTransition,
    PlayerNotFound,
    SessionNotFound,
    Unauthorized,
    UnknownAction,
    ValidationError,
)
from buzzer.models import OPEN_SESSION_QUESTION, BuzzerEvent, Player, Session, new_id
from .codes import CODE_LENGTH, generate_session_code, normalize_code
from .ranking import rank_buzzers

logger = logging.getLogger(__name__)

Broadcast = Callable[[str, Dict[str, Any]], None]
Snapshot = Dict[str, Any]


def session_update(event_type: str, snapshot: Snapshot, **extras) -> Dict[str, Any]:
    """Build the ``session_update`` message sent to a session room."""
    data = {'session': snapshot}
    data.update(extras)
    return {'type': event_type, 'data': data}


def _require_name(value, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


class SessionEngine:
    def __init__(
        self,
        timers,
        broadcast: Optional[Broadcast] = None,
        *,
        default_time_limit: int = 30,
        countdown_tick: float = 1.0,
        sweep_interval: float = 1.0,
        code_length: int = CODE_LENGTH,
        open_session_question: str = OPEN_SESSION_QUESTION,
        code_generator: Callable[[int], str] = generate_session_code,
    ):
        self._timers = timers
        self._broadcast = broadcast
        self._default_time_limit = default_time_limit
        self._countdown_tick = countdown_tick
        self._sweep_interval = sweep_interval
        self._code_length = code_length
        self._open_session_question = open_session_question
        self._code_generator = code_generator

        self._sessions: Dict[str, Session] = {}
        self._codes: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._sweep_timer = None

        self._action_handlers = {
            SetQuestion: self._set_question,
            StartQuestion: self._start_question,
            InstantLaunch: self._instant_launch,
            StopQuestion: self._stop_question,
            ClearBuzzers: self._clear_buzzers,
            LockBuzzers: self._lock_buzzers,
            UnlockBuzzers: self._unlock_buzzers,
            RemovePlayer: self._remove_player_action,
            RenamePlayer: self._rename_player,
        }

    @classmethod
    def from_config(cls, config, timers, broadcast: Optional[Broadcast] = None) -> 'SessionEngine':
        return cls(
            timers,
            broadcast,
            default_time_limit=int(config.get('DEFAULT_TIME_LIMIT_SEC', 30)),
            countdown_tick=float(config.get('COUNTDOWN_TICK_SEC', 1)),
            sweep_interval=float(config.get('SWEEP_INTERVAL_SEC', 1)),
            code_length=int(config.get('SESSION_CODE_LENGTH', CODE_LENGTH)),
            open_session_question=config.get('OPEN_SESSION_QUESTION', OPEN_SESSION_QUESTION),
        )

    # ---- lifecycle ----

    def start(self) -> None:
        """Start the backup sweep."""
        with self._lock:
            if self._sweep_timer is not None:
                return
            self._sweep_timer = self._timers.call_every(self._sweep_interval, self.sweep, name='backup-sweep')
        logger.info(f"[sweep-start] interval={self._sweep_interval}s")

    def shutdown(self) -> None:
        """Cancel every timer and drop all sessions."""
        with self._lock:
            if self._sweep_timer is not None:
                self._sweep_timer.cancel()
                self._sweep_timer = None
            for session in self._sessions.values():
                self._cancel_timers(session)
            count = len(self._sessions)
            self._sessions.clear()
            self._codes.clear()
        logger.info(f"[engine-shutdown] dropped {count} session(s)")

    # ---- queries ----

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def live_codes(self) -> Set[str]:
        with self._lock:
            return set(self._codes)

    def list_sessions(self) -> List[Snapshot]:
        with self._lock:
            return [session.to_dict() for session in self._sessions.values()]

    def get_session(self, session_id: str) -> Snapshot:
        with self._lock:
            return self._get(session_id).to_dict()

    def get_session_by_code(self, code: str) -> Snapshot:
        with self._lock:
            return self._get_by_code(code).to_dict()

    def has_player(self, session_id: str, player_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            return session is not None and player_id in session.players

    def buzzer_ranking(self, session_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return rank_buzzers(self._get(session_id))

    # ---- membership ----

    def create_session(self, name: str, host_name: str) -> Tuple[Snapshot, str]:
        name = _require_name(name, 'name')
        host_name = _require_name(host_name, 'hostName')
        with self._lock:
            code = self._allocate_code()
            host = Player(id=new_id(), name=host_name, is_host=True)
            session = Session(
                id=new_id(),
                code=code,
                name=name,
                host_player_id=host.id,
                time_limit_seconds=self._default_time_limit,
            )
            session.players[host.id] = host
            self._sessions[session.id] = session
            self._codes[code] = session.id
            logger.info(f"[session-create] session={session.id} code={code} host={host.id}")
            return session.to_dict(), host.id

    def join_session(self, code: str, player_name: str) -> Tuple[Snapshot, str]:
        player_name = _require_name(player_name, 'playerName')
        with self._lock:
            session = self._get_by_code(code)
            player = Player(id=new_id(), name=player_name)
            session.players[player.id] = player
            logger.info(f"[player-join] session={session.id} player={player.id} players={len(session.players)}")
            return session.to_dict(), player.id

    def remove_player(self, session_id: str, player_id: str) -> Optional[Snapshot]:
        """Remove a player; returns ``None`` when that emptied and destroyed the session."""
        with self._lock:
            session = self._get(session_id)
            if player_id not in session.players:
                raise PlayerNotFound(player_id)
            if self._remove_player_locked(session, player_id):
                return None
            return session.to_dict()

    # ---- buzzer ----

    def press_buzzer(
        self, session_id: str, player_id: str, observed_at: Optional[float] = None
    ) -> Optional[Tuple[Snapshot, BuzzerEvent, List[Dict[str, Any]]]]:
        """Accept a buzz, or return ``None`` without touching any state.

        On acceptance returns the snapshot, the event and the ranking, all
        read under the same lock so they agree with each other.

        The timestamp is taken here, at the mutation point, so arrival order
        is decided by the server and not by client clocks.
        """
        with self._lock:
            try:
                session = self._get(session_id)
                player = self._player(session, player_id)
                self._check_buzzable(session, player)
            except BuzzerError as exc:
                logger.debug(f"[buzzer-reject] session={session_id} player={player_id} reason={exc}")
                return None

            timestamp = self._timers.now() if observed_at is None else observed_at
            session.buzz_counter += 1
            player.press(timestamp, session.buzz_counter)
            ranking = rank_buzzers(session)
            rank = next(r['rank'] for r in ranking if r['playerId'] == player.id)
            logger.info(
                f"[buzzer-accept] session={session.id} player={player.id} ts={timestamp:.3f} rank={rank}"
            )
            event = BuzzerEvent(player_id=player.id, timestamp=timestamp, rank=rank)
            return session.to_dict(), event, ranking

    @staticmethod
    def _check_buzzable(session: Session, player: Player) -> None:
        if session.countdown_active:
            raise InvalidTransition('Countdown in progress')
        if not session.is_active:
            raise InvalidTransition('Round is not active')
        if session.buzzers_locked:
            raise InvalidTransition('Buzzers are locked')
        if player.buzzer_pressed:
            raise InvalidTransition('Buzzer already pressed')

    # ---- host actions ----

    def execute_host_action(self, session_id: str, action, requesting_player_id: str) -> Optional[Snapshot]:
        """Run a host action; ``None`` means rejected and nothing changed."""
        with self._lock:
            try:
                session = self._get(session_id)
                if requesting_player_id != session.host_player_id:
                    raise Unauthorized()
                handler = self._action_handlers.get(type(action))
                if handler is None:
                    raise UnknownAction(getattr(action, 'type', type(action).__name__))
                handler(session, action, requesting_player_id)
            except BuzzerError as exc:
                logger.debug(
                    f"[action-reject] session={session_id} player={requesting_player_id} "
                    f"action={getattr(action, 'type', action)!r} reason={exc}"
                )
                return None
            logger.info(f"[host-action] session={session.id} action={action.type} phase={session.phase}")
            return session.to_dict()

    def _set_question(self, session: Session, action: SetQuestion, requester: str) -> None:
        session.current_question = action.question
        session.time_limit_seconds = action.time_limit

    def _start_question(self, session: Session, action: StartQuestion, requester: str) -> None:
        self._begin_countdown(session, action.countdown_delay)

    def _instant_launch(self, session: Session, action: InstantLaunch, requester: str) -> None:
        session.current_question = self._open_session_question
        session.time_limit_seconds = action.time_limit
        self._begin_countdown(session, action.countdown_delay)

    def _stop_question(self, session: Session, action: StopQuestion, requester: str) -> None:
        self._cancel_timers(session)
        session.stop_round()

    def _clear_buzzers(self, session: Session, action: ClearBuzzers, requester: str) -> None:
        session.clear_buzzers()

    def _lock_buzzers(self, session: Session, action: LockBuzzers, requester: str) -> None:
        session.buzzers_locked = True

    def _unlock_buzzers(self, session: Session, action: UnlockBuzzers, requester: str) -> None:
        session.buzzers_locked = False

    def _remove_player_action(self, session: Session, action: RemovePlayer, requester: str) -> None:
        # the host leaves by disconnecting, not through this action
        if action.player_id == requester or action.player_id not in session.players:
            return
        self._remove_player_locked(session, action.player_id)

    def _rename_player(self, session: Session, action: RenamePlayer, requester: str) -> None:
        player = session.players.get(action.player_id)
        if player is not None:
            player.name = action.new_name

    # ---- rounds and timers ----

    def _begin_countdown(self, session: Session, countdown_delay: int) -> None:
        self._cancel_timers(session)
        session.clear_buzzers()
        session.start_countdown(self._timers.now(), countdown_delay)
        logger.info(
            f"[countdown-start] session={session.id} delay={countdown_delay}s limit={session.time_limit_seconds}s"
        )
        if countdown_delay <= 0:
            self._activate(session)
            return

        self._publish(session, 'countdown_started', countdownDelay=countdown_delay)
        session_id = session.id
        handle = None

        def _tick():
            # scheduled under the lock, so `handle` is bound once we hold it
            with self._lock:
                self._on_countdown_tick(session_id, handle)

        handle = self._timers.call_every(self._countdown_tick, _tick, name=f"countdown:{session_id}")
        session.countdown_timer = handle

    def _on_countdown_tick(self, session_id: str, handle) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.countdown_timer is not handle or not session.countdown_active:
                handle.cancel()
                return
            session.countdown_remaining -= 1
            if session.countdown_remaining > 0:
                self._publish(session, 'countdown_tick', remainingTime=session.countdown_remaining)
                return
            handle.cancel()
            session.countdown_timer = None
            self._activate(session)

    def _activate(self, session: Session) -> None:
        session.activate(self._timers.now())
        session_id = session.id
        handle = None

        def _expire():
            with self._lock:
                self._on_round_expired(session_id, handle)

        handle = self._timers.call_later(session.time_limit_seconds, _expire, name=f"expiry:{session_id}")
        session.expiry_timer = handle
        logger.info(f"[timer-set] session={session_id} stage=round duration={session.time_limit_seconds}s")
        self._publish(session, 'question_started')

    def _on_round_expired(self, session_id: str, handle) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.expiry_timer is not handle:
                logger.debug(f"[timer-abort] session={session_id} stale expiry")
                return
            session.expiry_timer = None
            if not session.is_active:
                return
            session.lock_round()
            logger.info(f"[timer-fire] session={session_id} auto-locked after {session.time_limit_seconds}s")
            self._publish(session, 'buzzers_locked')

    def sweep(self) -> int:
        """Force-lock live rounds that outlived their time limit.

        Backstop for expiry timers that fired late or not at all. Whichever
        of the two runs first locks the round; the other then finds
        ``is_active`` already false and does nothing.
        """
        locked = 0
        with self._lock:
            now = self._timers.now()
            for session in list(self._sessions.values()):
                if not session.is_active or session.question_start_time is None or session.buzzers_locked:
                    continue
                if now - session.question_start_time < session.time_limit_seconds * 1000.0:
                    continue
                if session.expiry_timer is not None:
                    session.expiry_timer.cancel()
                    session.expiry_timer = None
                session.lock_round()
                locked += 1
                logger.info(
                    f"[timer-fire] session={session.id} auto-locked after {session.time_limit_seconds}s (backup sweep)"
                )
                self._publish(session, 'buzzers_locked')
        return locked

    @staticmethod
    def _cancel_timers(session: Session) -> None:
        for attr in ('countdown_timer', 'expiry_timer'):
            handle = getattr(session, attr)
            if handle is not None:
                handle.cancel()
                setattr(session, attr, None)

    # ---- internals ----

    def _get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _get_by_code(self, code: str) -> Session:
        if not isinstance(code, str):
            raise ValidationError('code must be a string')
        normalized = normalize_code(code)
        session_id = self._codes.get(normalized)
        if session_id is None or session_id not in self._sessions:
            raise SessionNotFound(normalized or code)
        return self._sessions[session_id]

    @staticmethod
    def _player(session: Session, player_id: str) -> Player:
        player = session.players.get(player_id)
        if player is None:
            raise PlayerNotFound(player_id)
        return player

    def _allocate_code(self) -> str:
        while True:
            code = normalize_code(self._code_generator(self._code_length))
            if code and code not in self._codes:
                return code
            logger.warning(f"[code-collision] {code} is live, regenerating")

    def _remove_player_locked(self, session: Session, player_id: str) -> bool:
        """Remove a player; True if the session was destroyed as a result."""
        session.players.pop(player_id)
        logger.info(f"[player-leave] session={session.id} player={player_id} remaining={len(session.players)}")
        if not session.players:
            self._destroy(session)
            return True
        if session.host_player_id == player_id:
            successor = next(iter(session.players.values()))
            successor.is_host = True
            session.host_player_id = successor.id
            logger.info(f"[host-handoff] session={session.id} from={player_id} to={successor.id}")
        return False

    def _destroy(self, session: Session) -> None:
        self._cancel_timers(session)
        self._sessions.pop(session.id, None)
        if self._codes.get(session.code) == session.id:
            del self._codes[session.code]
        logger.info(f"[session-destroyed] session={session.id} code={session.code}")

    def _publish(self, session: Session, event_type: str, **extras) -> None:
        if self._broadcast is None:
            return
        message = session_update(event_type, session.to_dict(), **extras)
        try:
            self._broadcast(session.id, message)
        except Exception:
            logger.exception(f"[broadcast-error] session={session.id} type={event_type}")
