import logging

from models.errors import InvalidInput
from services.game_records import teams_path
from services.store import EntityStore

logger = logging.getLogger(__name__)


class ScoreLedger:
    """Team score updates. Only ever called from the turn state machine."""

    def __init__(self, store: EntityStore):
        self.store = store

    async def add_points(self, game_id: str, team_id: str, delta: int = 1) -> int:
        """Read-modify-write of team.score. Returns the new score."""
        if delta < 0:
            raise InvalidInput("Scores never decrease")

        def _bump(team: dict) -> dict:
            return {"score": int(team.get("score") or 0) + delta}

        team = await self.store.update_with(f"{teams_path(game_id)}/{team_id}", _bump)
        logger.info(f"[{game_id}] Team {team_id} score → {team['score']} (+{delta})")
        return team["score"]
