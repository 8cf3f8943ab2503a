from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from typing import Dict, Any, Optional

from buzzer import SOCKET_NAMESPACE, get_engine, socketio
from buzzer.actions import RemovePlayer, parse_host_action
from buzzer.exceptions import BuzzerError
from buzzer.services.sessions import session_update


# sid -> {'session_id': ..., 'player_id': ...}; set by join_session, dropped on leave/disconnect
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _broadcast(session_id: str, event_type: str, snapshot: Dict[str, Any], skip_sid: Optional[str] = None, **extras) -> None:
    emit(
        'session_update',
        session_update(event_type, snapshot, **extras),
        to=session_id,
        skip_sid=skip_sid,
        namespace=SOCKET_NAMESPACE,
    )


def _error(message: str) -> None:
    emit('error', {'message': message})


def _current_ctx() -> Optional[Dict[str, Any]]:
    ctx = _sid_to_ctx.get(_get_sid())
    if not ctx:
        _error('Not in a session')
    return ctx


def handle_connect(auth=None):
    emit('connected', {'message': f'Connected to {SOCKET_NAMESPACE}'})


def handle_disconnect(reason=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    _depart(ctx, skip_sid=_get_sid())


def handle_join_session(data):
    session_id = (data or {}).get('sessionId')
    player_id = (data or {}).get('playerId')
    if not all([session_id, player_id]):
        _error('sessionId and playerId are required')
        return
    if not isinstance(session_id, str) or not isinstance(player_id, str):
        _error('sessionId and playerId must be strings')
        return

    engine = get_engine()
    if not engine.has_player(session_id, player_id):
        _error('Invalid session or player')
        return

    sid = _get_sid()
    previous = _sid_to_ctx.pop(sid, None)
    if previous and (previous['session_id'], previous['player_id']) != (session_id, player_id):
        # switching seats tears down the old association like a disconnect would
        if previous['session_id'] != session_id:
            leave_room(previous['session_id'])
        _depart(previous, skip_sid=sid)
    join_room(session_id)
    _sid_to_ctx[sid] = {'session_id': session_id, 'player_id': player_id}

    try:
        snapshot = engine.get_session(session_id)
    except BuzzerError as exc:
        _error(exc.message)
        return
    emit('joined', {'room': session_id, 'session': snapshot})
    _broadcast(session_id, 'player_joined', snapshot, skip_sid=sid, playerId=player_id)
    current_app.logger.info(f"[ws-join] sid={sid} session={session_id} player={player_id}")


def handle_leave_session(data=None):
    sid = _get_sid()
    ctx = _sid_to_ctx.pop(sid, None)
    if not ctx:
        _error('Not in a session')
        return
    leave_room(ctx['session_id'])
    emit('left', {'room': ctx['session_id']})
    _depart(ctx)


def handle_press_buzzer(data=None):
    ctx = _current_ctx()
    if not ctx:
        return
    result = get_engine().press_buzzer(ctx['session_id'], ctx['player_id'])
    if result is None:
        _error('Cannot press buzzer')
        return

    snapshot, event, ranking = result
    _broadcast(ctx['session_id'], 'buzzer_pressed', snapshot, buzzerEvent=event.to_dict(), ranking=ranking)


def handle_host_action(data):
    ctx = _current_ctx()
    if not ctx:
        return
    payload = data or {}
    config = current_app.config
    try:
        action = parse_host_action(
            payload.get('type'),
            payload.get('data'),
            default_time_limit=int(config.get('DEFAULT_TIME_LIMIT_SEC', 30)),
            default_countdown=int(config.get('DEFAULT_COUNTDOWN_SEC', 3)),
        )
    except BuzzerError as exc:
        _error(exc.message)
        return

    snapshot = get_engine().execute_host_action(ctx['session_id'], action, ctx['player_id'])
    if snapshot is None:
        _error('Action failed')
        return

    if isinstance(action, RemovePlayer) and action.player_id not in snapshot['players']:
        _detach_player(ctx['session_id'], action.player_id)
    _broadcast(ctx['session_id'], action.type, snapshot)


def handle_ping(data=None):
    emit('pong', data or {})


# ---- Membership helpers ----

def _depart(ctx: Dict[str, Any], skip_sid: Optional[str] = None) -> None:
    """Remove the player behind ``ctx`` and tell whoever is left."""
    session_id = ctx['session_id']
    player_id = ctx['player_id']
    try:
        snapshot = get_engine().remove_player(session_id, player_id)
    except BuzzerError as exc:
        # Already removed by the host, or the session is gone
        current_app.logger.info(f"[ws-leave] session={session_id} player={player_id} skipped: {exc.message}")
        return
    if snapshot is None:
        current_app.logger.info(f"[ws-leave] session={session_id} destroyed with last player {player_id}")
        return
    _broadcast(session_id, 'player_left', snapshot, skip_sid=skip_sid, playerId=player_id)


def _detach_player(session_id: str, player_id: str) -> None:
    """Drop socket associations for a player the host removed."""
    for sid, ctx in list(_sid_to_ctx.items()):
        if ctx['session_id'] == session_id and ctx['player_id'] == player_id:
            _sid_to_ctx.pop(sid, None)
            leave_room(session_id, sid=sid, namespace=SOCKET_NAMESPACE)
            socketio.emit('removed', {'sessionId': session_id}, to=sid, namespace=SOCKET_NAMESPACE)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('join_session', handle_join_session, namespace=SOCKET_NAMESPACE)
    socketio.on_event('leave_session', handle_leave_session, namespace=SOCKET_NAMESPACE)
    socketio.on_event('press_buzzer', handle_press_buzzer, namespace=SOCKET_NAMESPACE)
    socketio.on_event('host_action', handle_host_action, namespace=SOCKET_NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=SOCKET_NAMESPACE)
