"""
Game HTTP endpoints.

Routes (all under /api):
  POST   /games                                 — Create game + register host as first player
  GET    /games/by-code/{code}                  — Resolve a join code to an open game
  POST   /games/{game_id}/join                  — Player joins the lobby
  GET    /games/{game_id}                       — Public game state (word texts hidden)
  PUT    /games/{game_id}/settings              — Host updates settings
  POST   /games/{game_id}/teams                 — Host adds a team
  PATCH  /games/{game_id}/teams/{team_id}       — Host renames a team
  DELETE /games/{game_id}/teams/{team_id}       — Host deletes a team
  PUT    /games/{game_id}/players/{pid}/team    — Join / leave a team
  DELETE /games/{game_id}/players/{pid}         — Leave, or host removes a player
  POST   /games/{game_id}/words                 — Submit a word
  POST   /games/{game_id}/words/suggest         — Fill remaining quota with suggested words
  GET    /games/{game_id}/players/{pid}/words   — A player's own words
  DELETE /games/{game_id}/words/{word_id}       — Remove own word
  GET    /games/{game_id}/verification          — Start checklist for a player
  POST   /games/{game_id}/start                 — Host starts the game
  POST   /games/{game_id}/turn/start|correct|skip|time-up — Describer turn commands
  GET    /games/{game_id}/rounds/{round}/counts — Guessed / total words for a round
"""
import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from models.errors import (
    GameError, NotFound, NotOwner, QuotaExceeded, InvalidTransition,
    InvalidInput, PreconditionFailed, StoreNotImplemented,
)
from models.game import (
    CreateGameRequest, CreateGameResponse,
    JoinGameRequest, JoinGameResponse,
    UpdateSettingsRequest, TeamRequest, AssignTeamRequest,
    SubmitWordRequest, SuggestWordsRequest, StartGameRequest, TurnCommandRequest,
)
from services.engine import Engine, get_engine
from utils.timer import deadline_ms, time_remaining

logger = logging.getLogger(__name__)

router = APIRouter(tags=["games"])


# ── Error mapping ─────────────────────────────────────────────────────────────

ERROR_STATUS: Dict[type, int] = {
    NotFound: 404,
    NotOwner: 403,
    QuotaExceeded: 409,
    InvalidTransition: 409,
    PreconditionFailed: 422,
    InvalidInput: 400,
}


def error_body(exc: GameError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, PreconditionFailed):
        body["errors"] = exc.errors
    return body


async def _game_error_handler(request: Request, exc: GameError) -> JSONResponse:
    status = next((s for cls, s in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    logger.warning(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(status_code=status, content=error_body(exc))


async def _not_implemented_handler(request: Request, exc: StoreNotImplemented) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} not supported by store: {exc}")
    return JSONResponse(status_code=501, content={"detail": str(exc), "code": exc.code})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GameError, _game_error_handler)
    app.add_exception_handler(StoreNotImplemented, _not_implemented_handler)


# ── Public state ──────────────────────────────────────────────────────────────

async def public_state(engine: Engine, game_id: str) -> Dict[str, Any]:
    """Game, teams, players and word counts. Word texts are never included."""
    game = await engine.records.get_game(game_id)
    teams = await engine.records.list_teams(game_id)
    players = await engine.records.list_players(game_id)
    words = await engine.records.list_words(game_id)

    word_counts: Dict[str, int] = {}
    for w in words:
        word_counts[w.submitted_by_player_id] = word_counts.get(w.submitted_by_player_id, 0) + 1

    state: Dict[str, Any] = {
        "game": game.to_public(),
        "teams": [t.to_public() for t in teams],
        "players": [p.to_public() for p in players],
        "word_counts": word_counts,
        "total_words": len(words),
        "round_counts": None,
        "time_remaining": None,
        "turn_deadline": deadline_ms(game),
    }
    if game.in_round:
        guessed = sum(1 for w in words if w.guessed_in(game.current_round))
        state["round_counts"] = {"guessed": guessed, "total": len(words)}
        now = await engine.store.server_time_ms()
        state["time_remaining"] = time_remaining(game, now)
    return state


# ── Lobby ─────────────────────────────────────────────────────────────────────

@router.post("/games", response_model=CreateGameResponse, status_code=201)
async def create_game(body: CreateGameRequest, engine: Engine = Depends(get_engine)):
    """Create a new game and register the host as the first player."""
    game, host = await engine.lobby.create_game(body.host_name, body.settings)
    return CreateGameResponse(game_id=game.id, code=game.code, host_player_id=host.id)


@router.get("/games/by-code/{code}")
async def find_game_by_code(code: str, engine: Engine = Depends(get_engine)):
    game = await engine.lobby.find_by_code(code)
    return {"game_id": game.id, "code": game.code, "state": game.state.value}


@router.post("/games/{game_id}/join", response_model=JoinGameResponse, status_code=200)
async def join_game(game_id: str, body: JoinGameRequest, engine: Engine = Depends(get_engine)):
    """Add a player to the lobby. Rejected if the game has already started."""
    player = await engine.lobby.join(game_id, body.player_name)
    return JoinGameResponse(player_id=player.id, game_id=game_id)


@router.get("/games/{game_id}")
async def get_game(game_id: str, engine: Engine = Depends(get_engine)):
    return await public_state(engine, game_id)


@router.put("/games/{game_id}/settings")
async def update_settings(
    game_id: str, body: UpdateSettingsRequest, engine: Engine = Depends(get_engine)
):
    game = await engine.lobby.update_settings(game_id, body.requester_id, body.settings)
    return {"settings": game.settings.model_dump(by_alias=True)}


@router.post("/games/{game_id}/teams", status_code=201)
async def add_team(game_id: str, body: TeamRequest, engine: Engine = Depends(get_engine)):
    team = await engine.lobby.add_team(game_id, body.requester_id, body.name)
    return team.to_public()


@router.patch("/games/{game_id}/teams/{team_id}")
async def rename_team(
    game_id: str, team_id: str, body: TeamRequest, engine: Engine = Depends(get_engine)
):
    team = await engine.lobby.rename_team(game_id, body.requester_id, team_id, body.name)
    return team.to_public()


@router.delete("/games/{game_id}/teams/{team_id}", status_code=204)
async def delete_team(
    game_id: str,
    team_id: str,
    requester_id: str = Query(..., alias="requesterId"),
    engine: Engine = Depends(get_engine),
):
    await engine.lobby.delete_team(game_id, requester_id, team_id)


@router.put("/games/{game_id}/players/{player_id}/team")
async def assign_team(
    game_id: str, player_id: str, body: AssignTeamRequest, engine: Engine = Depends(get_engine)
):
    player = await engine.lobby.assign_team(game_id, body.requester_id, player_id, body.team_id)
    return player.to_public()


@router.delete("/games/{game_id}/players/{player_id}", status_code=204)
async def remove_player(
    game_id: str,
    player_id: str,
    requester_id: str = Query(..., alias="requesterId"),
    engine: Engine = Depends(get_engine),
):
    await engine.lobby.remove_player(game_id, requester_id, player_id)


# ── Words ─────────────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/words", status_code=201)
async def submit_word(game_id: str, body: SubmitWordRequest, engine: Engine = Depends(get_engine)):
    word = await engine.word_pool.submit(game_id, body.player_id, body.text)
    return word.to_public()


@router.post("/games/{game_id}/words/suggest", status_code=201)
async def suggest_words(
    game_id: str, body: SuggestWordsRequest, engine: Engine = Depends(get_engine)
):
    words = await engine.word_pool.add_suggested(game_id, body.player_id, body.description)
    return {"words": [w.to_public() for w in words]}


@router.get("/games/{game_id}/players/{player_id}/words")
async def list_player_words(game_id: str, player_id: str, engine: Engine = Depends(get_engine)):
    await engine.records.get_game(game_id)
    words = await engine.word_pool.list_by_player(game_id, player_id)
    return {"words": [w.to_public() for w in words]}


@router.delete("/games/{game_id}/words/{word_id}", status_code=204)
async def remove_word(
    game_id: str,
    word_id: str,
    player_id: str = Query(..., alias="playerId"),
    engine: Engine = Depends(get_engine),
):
    await engine.word_pool.remove(game_id, word_id, player_id)


# ── Start ─────────────────────────────────────────────────────────────────────

@router.get("/games/{game_id}/verification")
async def verify_start(
    game_id: str,
    player_id: str = Query(..., alias="playerId"),
    engine: Engine = Depends(get_engine),
):
    """Start checklist, derived from the store now rather than any client cache."""
    errors = await engine.game_master.verify_start(game_id, player_id)
    return {"can_start": not errors, "errors": errors}


@router.post("/games/{game_id}/start")
async def start_game(game_id: str, body: StartGameRequest, engine: Engine = Depends(get_engine)):
    game = await engine.game_master.start_game(game_id, body.player_id)
    return {"status": "started", "game": game.to_public()}


# ── Turns (describer only) ────────────────────────────────────────────────────

@router.post("/games/{game_id}/turn/start")
async def start_turn(game_id: str, body: TurnCommandRequest, engine: Engine = Depends(get_engine)):
    outcome = await engine.game_master.start_turn(game_id, body.player_id)
    return outcome.to_response()


@router.post("/games/{game_id}/turn/correct")
async def correct_guess(
    game_id: str, body: TurnCommandRequest, engine: Engine = Depends(get_engine)
):
    outcome = await engine.game_master.correct_guess(game_id, body.player_id, body.word_id)
    return outcome.to_response()


@router.post("/games/{game_id}/turn/skip")
async def skip_word(game_id: str, body: TurnCommandRequest, engine: Engine = Depends(get_engine)):
    outcome = await engine.game_master.skip(game_id, body.player_id, body.word_id)
    return outcome.to_response()


@router.post("/games/{game_id}/turn/time-up")
async def time_up(game_id: str, body: TurnCommandRequest, engine: Engine = Depends(get_engine)):
    outcome = await engine.game_master.time_up(game_id, body.player_id)
    return outcome.to_response()


@router.get("/games/{game_id}/rounds/{round_number}/counts")
async def round_counts(game_id: str, round_number: int, engine: Engine = Depends(get_engine)):
    await engine.records.get_game(game_id)
    counts = await engine.word_pool.counts_for_round(game_id, round_number)
    return counts.model_dump()
