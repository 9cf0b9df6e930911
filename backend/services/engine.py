import logging
import random
from typing import Optional

from starlette.requests import HTTPConnection

from agents.game_master import GameMaster
from agents.lobby import LobbyManager
from agents.score_ledger import ScoreLedger
from agents.word_pool import WordPoolManager
from agents.word_suggester import WordSuggester
from services.game_records import GameRecords
from services.store import EntityStore

logger = logging.getLogger(__name__)


class Engine:
    """All engine components wired to one Entity Store adapter."""

    def __init__(
        self,
        store: EntityStore,
        suggester: Optional[WordSuggester] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.records = GameRecords(store)
        self.word_pool = WordPoolManager(self.records, suggester, rng)
        self.score_ledger = ScoreLedger(store)
        self.game_master = GameMaster(self.records, self.word_pool, self.score_ledger, rng)
        self.lobby = LobbyManager(self.records, rng)

    async def close(self) -> None:
        await self.store.close()


def get_engine(conn: HTTPConnection) -> Engine:
    """FastAPI dependency for both HTTP routes and WebSocket endpoints."""
    return conn.app.state.engine
