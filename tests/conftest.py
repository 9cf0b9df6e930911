"""
Pytest configuration and fixtures
"""
import random
from typing import Dict, List

import pytest

from models.game import GameSettings
from services.engine import Engine
from services.memory_store import MemoryStore
from agents.word_suggester import WordSuggester


class FakeClock:
    """Store clock under test control, in epoch milliseconds."""

    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(clock=clock)


@pytest.fixture
def engine(store) -> Engine:
    return Engine(store, suggester=WordSuggester(), rng=random.Random(1234))


async def seed_lobby(
    engine: Engine,
    team_sizes: List[int] = (2, 2),
    words_per_player: int = 5,
    settings: GameSettings = None,
) -> Dict:
    """
    Create a game whose host plus joiners fill the given team sizes, each
    player submitting `words_per_player` words.
    """
    game, host = await engine.lobby.create_game("Host", settings)
    teams = []
    for i, _ in enumerate(team_sizes):
        teams.append(await engine.lobby.add_team(game.id, host.id, f"Team {chr(65 + i)}"))

    players = [host]
    needed = sum(team_sizes) - 1
    for i in range(needed):
        players.append(await engine.lobby.join(game.id, f"Player {i + 1}"))

    cursor = 0
    for team, size in zip(teams, team_sizes):
        for player in players[cursor:cursor + size]:
            await engine.lobby.assign_team(game.id, host.id, player.id, team.id)
            player.team_id = team.id
        cursor += size

    for player in players:
        for n in range(words_per_player):
            await engine.word_pool.submit(game.id, player.id, f"{player.name} word {n}")

    return {"game": game, "host": host, "teams": teams, "players": players}


@pytest.fixture
def seed(engine):
    """seed_lobby bound to the test's engine, for tests that need several games."""
    async def _seed(**kwargs) -> Dict:
        return await seed_lobby(engine, **kwargs)
    return _seed


@pytest.fixture
async def lobby(engine) -> Dict:
    return await seed_lobby(engine)


@pytest.fixture
async def started(engine, lobby) -> Dict:
    game = await engine.game_master.start_game(lobby["game"].id, lobby["host"].id)
    return {**lobby, "game": game}
