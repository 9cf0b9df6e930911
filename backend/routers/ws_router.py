"""
WebSocket Hub — real-time change notifications and describer commands.

URL: /ws/{game_id}?playerId={player_id}

Connection flow:
  1. Validate game + player exist
  2. Accept and register the connection
  3. Send private "connected" message
  4. Subscribe to the game record and the teams / players collections; every
     store change is pushed as a "game" / "teams" / "players" snapshot
  5. Message loop (_dispatch_message)
  6. On disconnect: close subscriptions, broadcast "player_left"

Client → server message types:
  ping        — keep-alive heartbeat → "pong"
  start_turn  — describer starts their turn
  correct     — describer reports the word on screen guessed   {wordId}
  skip        — describer skips the word on screen             {wordId}
  time_up     — describer's timer reached zero

Turn commands reply privately with "turn_result" (carrying the describer's
next word) or with "error" messages carrying the engine error code.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Query

from models.errors import GameError, PreconditionFailed, StoreNotImplemented
from models.game import Game
from services.engine import Engine, get_engine
from services.game_records import game_path, players_path, teams_path
from services.store import Subscription

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Connection Manager ─────────────────────────────────────────────────────────

class ConnectionManager:
    """
    One socket per (game, player). A reconnect replaces the previous socket,
    and the old socket's teardown leaves the replacement alone.
    """

    def __init__(self):
        # {game_id: {player_id: WebSocket}}
        self._sockets: Dict[str, Dict[str, WebSocket]] = {}

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def connect(self, game_id: str, player_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self._sockets.setdefault(game_id, {})[player_id] = ws
        logger.debug(f"[{game_id}] {player_id} connected ({self.count(game_id)} online)")

    def disconnect(self, game_id: str, player_id: str, ws: Optional[WebSocket] = None) -> None:
        players = self._sockets.get(game_id, {})
        if ws is None or players.get(player_id) is ws:
            players.pop(player_id, None)
        if not players:
            self._sockets.pop(game_id, None)

    def count(self, game_id: str) -> int:
        return len(self._sockets.get(game_id, {}))

    # ── Sending ────────────────────────────────────────────────────────────────

    async def _deliver(self, game_id: str, player_id: str, ws: WebSocket, message: Dict) -> None:
        try:
            await ws.send_json(message)
        except Exception as exc:
            logger.warning(f"[{game_id}] {message.get('type')} to {player_id} not delivered: {exc}")
            self.disconnect(game_id, player_id, ws)

    async def send_to(self, game_id: str, player_id: str, message: Dict) -> None:
        """Private message, e.g. the describer's next word."""
        ws = self._sockets.get(game_id, {}).get(player_id)
        if ws is not None:
            await self._deliver(game_id, player_id, ws, message)

    async def broadcast(self, game_id: str, message: Dict, exclude: Optional[str] = None) -> None:
        for pid, ws in list(self._sockets.get(game_id, {}).items()):
            if pid != exclude:
                await self._deliver(game_id, pid, ws, message)


manager = ConnectionManager()

# Strong references to running feed tasks; each removes itself when done.
_feed_tasks: Set[asyncio.Task] = set()


# ── Store change forwarding ────────────────────────────────────────────────────

def _render(kind: str, game_id: str, value: Any) -> Any:
    if kind == "game":
        return Game.from_record(game_id, value).to_public() if value else None
    return [{"id": snap.id, **snap.data} for snap in value]


async def _forward(game_id: str, player_id: str, kind: str, sub: Subscription) -> None:
    async for value in sub:
        await manager.send_to(game_id, player_id, {
            "type": kind,
            "data": _render(kind, game_id, value),
        })


async def _open_feeds(engine: Engine, game_id: str, player_id: str) -> List[Subscription]:
    feeds = [
        ("game", game_path(game_id)),
        ("teams", teams_path(game_id)),
        ("players", players_path(game_id)),
    ]
    subs: List[Subscription] = []
    for kind, path in feeds:
        try:
            sub = await engine.store.subscribe(path)
        except StoreNotImplemented:
            logger.warning(f"[{game_id}] {engine.store.name} store cannot push {kind} changes")
            continue
        subs.append(sub)
        task = asyncio.create_task(_forward(game_id, player_id, kind, sub))
        _feed_tasks.add(task)
        task.add_done_callback(_feed_tasks.discard)
    return subs


@router.websocket("/ws/{game_id}")
async def websocket_endpoint(
    ws: WebSocket,
    game_id: str,
    playerId: str = Query(..., description="Player id from join response"),
    engine: Engine = Depends(get_engine),
):
    # ── Validate game and player ───────────────────────────────────────────────
    game = await engine.records.find_game(game_id)
    if not game:
        await ws.close(code=4404, reason="Game not found")
        return
    try:
        player = await engine.records.get_player(game_id, playerId)
    except GameError:
        await ws.close(code=4403, reason="Player not found in this game")
        return

    # ── Accept and register ────────────────────────────────────────────────────
    await manager.connect(game_id, playerId, ws)
    await manager.send_to(game_id, playerId, {
        "type": "connected",
        "playerId": playerId,
        "isHost": player.is_host,
        "state": game.state.value,
    })
    await manager.broadcast(game_id, {
        "type": "player_joined",
        "playerId": playerId,
        "name": player.name,
        "count": manager.count(game_id),
    }, exclude=playerId)

    subs = await _open_feeds(engine, game_id, playerId)

    # ── Message loop ───────────────────────────────────────────────────────────
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send_to(game_id, playerId, {
                    "type": "error",
                    "message": "Invalid JSON",
                    "code": "PARSE_ERROR",
                })
                continue

            msg_type = data.get("type", "")
            # Frontend sends { type, data: { ... } }; unwrap inner payload for handlers
            inner_data = data.get("data") if isinstance(data.get("data"), dict) else {}
            await _handle_message(engine, game_id, playerId, msg_type, inner_data)

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(game_id, playerId, ws)
        for sub in subs:
            await sub.close()
        await manager.broadcast(game_id, {
            "type": "player_left",
            "playerId": playerId,
            "count": manager.count(game_id),
        })


# ── Message dispatcher ─────────────────────────────────────────────────────────

async def _handle_message(
    engine: Engine,
    game_id: str,
    player_id: str,
    msg_type: str,
    data: Dict,
) -> None:
    try:
        await _dispatch_message(engine, game_id, player_id, msg_type, data)
    except WebSocketDisconnect:
        raise
    except GameError as exc:
        logger.warning(f"[{game_id}] {msg_type} from {player_id} rejected ({exc.code}): {exc.message}")
        message: Dict[str, Any] = {"type": "error", "message": exc.message, "code": exc.code}
        if isinstance(exc, PreconditionFailed):
            message["errors"] = exc.errors
        await manager.send_to(game_id, player_id, message)
    except StoreNotImplemented as exc:
        await manager.send_to(game_id, player_id, {
            "type": "error", "message": str(exc), "code": exc.code,
        })
    except Exception:
        logger.exception("[%s] Unhandled error in _handle_message (type=%s)", game_id, msg_type)
        await manager.send_to(game_id, player_id, {
            "type": "error", "message": "Internal server error", "code": "SERVER_ERROR"
        })


async def _dispatch_message(
    engine: Engine,
    game_id: str,
    player_id: str,
    msg_type: str,
    data: Dict,
) -> None:
    gm = engine.game_master

    if msg_type == "ping":
        await manager.send_to(game_id, player_id, {"type": "pong"})
        return

    if msg_type == "start_turn":
        outcome = await gm.start_turn(game_id, player_id)
    elif msg_type == "correct":
        outcome = await gm.correct_guess(game_id, player_id, data.get("wordId"))
    elif msg_type == "skip":
        outcome = await gm.skip(game_id, player_id, data.get("wordId"))
    elif msg_type == "time_up":
        outcome = await gm.time_up(game_id, player_id)
    else:
        await manager.send_to(game_id, player_id, {
            "type": "error",
            "message": f"Unknown message type: '{msg_type}'",
            "code": "UNKNOWN_TYPE",
        })
        return

    await manager.send_to(game_id, player_id, {
        "type": "turn_result",
        "data": outcome.to_response(),
    })
