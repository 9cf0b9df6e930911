"""
Typed access to Game / Team / Player / Word records on top of an EntityStore.

Engine components talk to records through this class and never build store
paths themselves.
"""
import logging
from typing import Optional, List, Dict, Any

from models.errors import NotFound
from models.game import Game, GameStatus, Team, Player, Word
from services.store import EntityStore

logger = logging.getLogger(__name__)


def game_path(game_id: str) -> str:
    return f"games/{game_id}"


def teams_path(game_id: str) -> str:
    return f"games/{game_id}/teams"


def players_path(game_id: str) -> str:
    return f"games/{game_id}/players"


def words_path(game_id: str) -> str:
    return f"games/{game_id}/words"


class GameRecords:
    def __init__(self, store: EntityStore):
        self.store = store

    # ── Game ──────────────────────────────────────────────────────────────────

    async def create_game(self, game: Game) -> Game:
        game.id = await self.store.add("games", game.to_record())
        return game

    async def find_game(self, game_id: str) -> Optional[Game]:
        data = await self.store.get(game_path(game_id))
        if data is None:
            return None
        return Game.from_record(game_id, data)

    async def get_game(self, game_id: str) -> Game:
        game = await self.find_game(game_id)
        if game is None:
            raise NotFound(f"Game {game_id} not found")
        return game

    async def games_with_code(self, code: str) -> List[Game]:
        """Non-finished games currently using a join code."""
        snaps = await self.store.query("games", where=("code", "==", code))
        games = [Game.from_record(s.id, s.data) for s in snaps]
        return [g for g in games if g.state != GameStatus.FINISHED]

    async def update_game(self, game_id: str, changes: Dict[str, Any]) -> None:
        await self.store.update(game_path(game_id), changes)

    # ── Teams ─────────────────────────────────────────────────────────────────

    async def create_team(self, game_id: str, team: Team) -> Team:
        team.id = await self.store.add(teams_path(game_id), team.to_record())
        return team

    async def get_team(self, game_id: str, team_id: str) -> Team:
        data = await self.store.get(f"{teams_path(game_id)}/{team_id}")
        if data is None:
            raise NotFound(f"Team {team_id} not found")
        return Team.from_record(team_id, data)

    async def list_teams(self, game_id: str) -> List[Team]:
        snaps = await self.store.query(teams_path(game_id))
        return [Team.from_record(s.id, s.data) for s in snaps]

    async def update_team(self, game_id: str, team_id: str, changes: Dict[str, Any]) -> None:
        await self.store.update(f"{teams_path(game_id)}/{team_id}", changes)

    async def delete_team(self, game_id: str, team_id: str) -> None:
        await self.store.delete(f"{teams_path(game_id)}/{team_id}")

    # ── Players ───────────────────────────────────────────────────────────────

    async def create_player(self, game_id: str, player: Player) -> Player:
        player.id = await self.store.add(players_path(game_id), player.to_record())
        return player

    async def get_player(self, game_id: str, player_id: str) -> Player:
        data = await self.store.get(f"{players_path(game_id)}/{player_id}")
        if data is None:
            raise NotFound(f"Player {player_id} not found")
        return Player.from_record(player_id, data)

    async def list_players(self, game_id: str) -> List[Player]:
        snaps = await self.store.query(players_path(game_id), order_by="joinedAt")
        return [Player.from_record(s.id, s.data) for s in snaps]

    async def update_player(self, game_id: str, player_id: str, changes: Dict[str, Any]) -> None:
        await self.store.update(f"{players_path(game_id)}/{player_id}", changes)

    async def delete_player(self, game_id: str, player_id: str) -> None:
        await self.store.delete(f"{players_path(game_id)}/{player_id}")

    # ── Words ─────────────────────────────────────────────────────────────────

    async def create_word(self, game_id: str, word: Word) -> Word:
        word.id = await self.store.add(words_path(game_id), word.to_record())
        return word

    async def get_word(self, game_id: str, word_id: str) -> Word:
        data = await self.store.get(f"{words_path(game_id)}/{word_id}")
        if data is None:
            raise NotFound(f"Word {word_id} not found")
        return Word.from_record(word_id, data)

    async def list_words(self, game_id: str) -> List[Word]:
        snaps = await self.store.query(words_path(game_id))
        return [Word.from_record(s.id, s.data) for s in snaps]

    async def words_by_player(self, game_id: str, player_id: str) -> List[Word]:
        snaps = await self.store.query(
            words_path(game_id), where=("submittedByPlayerId", "==", player_id)
        )
        return [Word.from_record(s.id, s.data) for s in snaps]

    async def update_word(self, game_id: str, word_id: str, changes: Dict[str, Any]) -> None:
        await self.store.update(f"{words_path(game_id)}/{word_id}", changes)

    async def delete_word(self, game_id: str, word_id: str) -> None:
        await self.store.delete(f"{words_path(game_id)}/{word_id}")
