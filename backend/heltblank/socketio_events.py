import logging

from flask import request
from flask_socketio import emit, join_room, leave_room

from heltblank import get_registry, socketio
from heltblank.models import normalize_code
from heltblank.services.games import (
    GameError,
    PlayerNotFoundError,
    room_for,
)

logger = logging.getLogger(__name__)

NAME_MAX_LEN = 24
NAMESPACE = '/'


def broadcast(event, payload, to):
    # socketio.emit works from handlers and background tasks alike
    socketio.emit(event, payload, to=to, namespace=NAMESPACE)


def _get_sid() -> str:
    return request.sid  # type: ignore


def handle_connect():
    logger.info(f"[connect] sid={_get_sid()}")
    emit('connected', {'message': 'Connected to Helt Blank'})


def handle_disconnect(reason=None):
    sid = _get_sid()
    left = get_registry().leave(sid)
    logger.info(f"[disconnect] sid={sid} reason={reason} games={left}")


def handle_join_game(data):
    data = data or {}
    game_code = normalize_code(data.get('gameCode'))
    name = str(data.get('name') or '').strip()[:NAME_MAX_LEN]
    if not game_code or not name:
        emit('error', {'message': 'name and gameCode are required'})
        return
    sid = _get_sid()
    try:
        session, result = get_registry().join(game_code, sid, name)
    except GameError as exc:
        emit('error', {'message': exc.message})
        return
    join_room(session.room)
    session.broadcast_roster()
    emit('newPrompt', {
        'prompt': result.prompt,
        'players': result.players,
        'round': result.round_no,
    })


def handle_submit_answer(data):
    data = data or {}
    game_code = normalize_code(data.get('gameCode'))
    if not game_code:
        emit('error', {'message': 'gameCode is required'})
        return
    sid = _get_sid()
    try:
        get_registry().submit_answer(game_code, sid, data.get('answer'))
    except PlayerNotFoundError:
        # Stale connection id, e.g. replaced by a rejoin under the same name
        logger.debug(f"[answer-ignored] game={game_code} sid={sid} not in roster")
    except GameError as exc:
        emit('error', {'message': exc.message})


def handle_leave_game(data):
    game_code = normalize_code((data or {}).get('gameCode'))
    if not game_code:
        emit('error', {'message': 'gameCode is required'})
        return
    sid = _get_sid()
    try:
        get_registry().leave_session(game_code, sid)
    except GameError as exc:
        emit('error', {'message': exc.message})
        return
    leave_room(room_for(game_code))
    emit('left', {'gameCode': game_code})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the default namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('joinGame', handle_join_game, namespace=NAMESPACE)
    socketio.on_event('submitAnswer', handle_submit_answer, namespace=NAMESPACE)
    socketio.on_event('leaveGame', handle_leave_game, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
