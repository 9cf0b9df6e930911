"""
Lobby Manager — everything that happens before the host starts the game:
creating a game and its join code, joining, teams, team assignment and
settings. All mutations here are lobby-only.
"""
import logging
import random
from typing import Optional, Tuple

from models.errors import InvalidInput, InvalidTransition, NotFound, NotOwner
from models.game import Game, GameSettings, GameStatus, Player, Team
from services.game_records import GameRecords
from utils.game_code import generate_game_code, is_valid_game_code, normalize_game_code

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 30
CODE_ATTEMPTS = 20


def _clean_name(name: str, what: str) -> str:
    name = (name or "").strip()
    if not name:
        raise InvalidInput(f"{what} name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInput(f"{what} name cannot be longer than {MAX_NAME_LENGTH} characters")
    return name


class LobbyManager:
    def __init__(self, records: GameRecords, rng: Optional[random.Random] = None):
        self.records = records
        self.store = records.store
        self._rng = rng or random.Random()

    # ── Guards ────────────────────────────────────────────────────────────────

    async def _lobby_game(self, game_id: str) -> Game:
        game = await self.records.get_game(game_id)
        if game.state != GameStatus.LOBBY:
            raise InvalidTransition("Game has already started")
        return game

    @staticmethod
    def _require_host(game: Game, requester_id: str) -> None:
        if requester_id != game.host_id:
            raise NotOwner("Only the host can do that")

    # ── Games ─────────────────────────────────────────────────────────────────

    async def _free_code(self) -> str:
        for _ in range(CODE_ATTEMPTS):
            code = generate_game_code(self._rng)
            if not await self.records.games_with_code(code):
                return code
        raise RuntimeError("Could not allocate an unused join code")

    async def create_game(
        self, host_name: str, settings: Optional[GameSettings] = None
    ) -> Tuple[Game, Player]:
        host_name = _clean_name(host_name, "Player")
        now = await self.store.server_time_ms()
        code = await self._free_code()
        game = await self.records.create_game(
            Game(code=code, settings=settings or GameSettings(), created_at=now)
        )
        host = await self.records.create_player(
            game.id, Player(name=host_name, is_host=True, joined_at=now)
        )
        await self.records.update_game(game.id, {"hostId": host.id})
        game.host_id = host.id
        logger.info(f"[{game.id}] Game created with code {code} by host {host.id}")
        return game, host

    async def find_by_code(self, code: str) -> Game:
        code = normalize_game_code(code)
        if not is_valid_game_code(code):
            raise InvalidInput(f"Invalid game code: {code!r}")
        games = await self.records.games_with_code(code)
        if not games:
            raise NotFound(f"No open game with code {code}")
        return max(games, key=lambda g: g.created_at)

    async def join(self, game_id: str, name: str) -> Player:
        name = _clean_name(name, "Player")
        await self._lobby_game(game_id)
        now = await self.store.server_time_ms()
        player = await self.records.create_player(game_id, Player(name=name, joined_at=now))
        logger.info(f"[{game_id}] Player joined: {name} ({player.id})")
        return player

    async def update_settings(self, game_id: str, requester_id: str, settings: GameSettings) -> Game:
        game = await self._lobby_game(game_id)
        self._require_host(game, requester_id)
        await self.records.update_game(game_id, {"settings": settings.model_dump(by_alias=True)})
        game.settings = settings
        logger.info(f"[{game_id}] Settings updated: {settings.model_dump()}")
        return game

    # ── Teams ─────────────────────────────────────────────────────────────────

    async def add_team(self, game_id: str, requester_id: str, name: str) -> Team:
        name = _clean_name(name, "Team")
        game = await self._lobby_game(game_id)
        self._require_host(game, requester_id)
        team = await self.records.create_team(game_id, Team(name=name))
        logger.info(f"[{game_id}] Team added: {name} ({team.id})")
        return team

    async def rename_team(self, game_id: str, requester_id: str, team_id: str, name: str) -> Team:
        name = _clean_name(name, "Team")
        game = await self._lobby_game(game_id)
        self._require_host(game, requester_id)
        team = await self.records.get_team(game_id, team_id)
        await self.records.update_team(game_id, team_id, {"name": name})
        team.name = name
        return team

    async def delete_team(self, game_id: str, requester_id: str, team_id: str) -> None:
        game = await self._lobby_game(game_id)
        self._require_host(game, requester_id)
        await self.records.get_team(game_id, team_id)
        for player in await self.records.list_players(game_id):
            if player.team_id == team_id:
                await self.records.update_player(game_id, player.id, {"teamId": None})
        await self.records.delete_team(game_id, team_id)
        logger.info(f"[{game_id}] Team deleted: {team_id}")

    # ── Players ───────────────────────────────────────────────────────────────

    async def assign_team(
        self, game_id: str, requester_id: str, player_id: str, team_id: Optional[str]
    ) -> Player:
        game = await self._lobby_game(game_id)
        if requester_id != player_id:
            self._require_host(game, requester_id)
        player = await self.records.get_player(game_id, player_id)
        if team_id is not None:
            await self.records.get_team(game_id, team_id)
        await self.records.update_player(game_id, player_id, {"teamId": team_id})
        player.team_id = team_id
        logger.info(f"[{game_id}] Player {player_id} → team {team_id}")
        return player

    async def remove_player(self, game_id: str, requester_id: str, player_id: str) -> None:
        game = await self._lobby_game(game_id)
        player = await self.records.get_player(game_id, player_id)
        if requester_id != player_id:
            self._require_host(game, requester_id)
        if player.is_host:
            raise InvalidTransition("The host cannot leave the game")
        for word in await self.records.words_by_player(game_id, player_id):
            await self.records.delete_word(game_id, word.id)
        await self.records.delete_player(game_id, player_id)
        logger.info(f"[{game_id}] Player removed: {player_id}")
