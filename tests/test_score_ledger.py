import pytest

from models.errors import InvalidInput, NotFound


class TestScoreLedger:
    async def test_points_accumulate(self, engine, lobby):
        game_id = lobby["game"].id
        team = lobby["teams"][0]
        assert await engine.score_ledger.add_points(game_id, team.id) == 1
        assert await engine.score_ledger.add_points(game_id, team.id, 2) == 3
        assert (await engine.records.get_team(game_id, team.id)).score == 3
        assert (await engine.records.get_team(game_id, lobby["teams"][1].id)).score == 0

    async def test_negative_delta_is_rejected(self, engine, lobby):
        with pytest.raises(InvalidInput):
            await engine.score_ledger.add_points(lobby["game"].id, lobby["teams"][0].id, -1)

    async def test_unknown_team(self, engine, lobby):
        with pytest.raises(NotFound):
            await engine.score_ledger.add_points(lobby["game"].id, "nope")
