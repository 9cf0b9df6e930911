"""
Turn sequencer property-based tests
"""
import random
from typing import List, Tuple

import pytest
from hypothesis import given, settings, strategies as st

from agents.turn_sequencer import (
    SUPER_ROUNDS, advance_cursor, extend_sequence, generate_turn_sequence, team_rosters,
)
from models.game import Player, TurnSequence


def make_players(team_sizes: List[int]) -> Tuple[List[str], List[Player]]:
    team_ids = [f"team{i}" for i in range(len(team_sizes))]
    players = []
    joined = 0
    for team_id, size in zip(team_ids, team_sizes):
        for n in range(size):
            joined += 1
            players.append(Player(id=f"{team_id}-p{n}", name=f"P{joined}", team_id=team_id, joined_at=joined))
    return team_ids, players


team_size_lists = st.lists(st.integers(min_value=2, max_value=6), min_size=2, max_size=6)


class TestGenerateTurnSequence:
    @given(team_sizes=team_size_lists, seed=st.integers(min_value=0, max_value=10**6))
    @settings(max_examples=100)
    def test_length_and_membership(self, team_sizes, seed):
        team_ids, players = make_players(team_sizes)
        seq = generate_turn_sequence(team_ids, players, random.Random(seed))

        assert len(seq.turns) == SUPER_ROUNDS * max(team_sizes) * len(team_sizes)
        assert seq.current_index == 0
        pairs = {(t.team_id, t.player_id) for t in seq.turns}
        assert pairs == {(p.team_id, p.id) for p in players}

    @given(team_sizes=team_size_lists, seed=st.integers(min_value=0, max_value=10**6))
    @settings(max_examples=100)
    def test_no_consecutive_turns_for_same_team(self, team_sizes, seed):
        team_ids, players = make_players(team_sizes)
        seq = generate_turn_sequence(team_ids, players, random.Random(seed))
        for prev, nxt in zip(seq.turns, seq.turns[1:]):
            assert prev.team_id != nxt.team_id

    @given(team_sizes=team_size_lists, seed=st.integers(min_value=0, max_value=10**6))
    @settings(max_examples=50)
    def test_each_team_cycles_its_roster_in_order(self, team_sizes, seed):
        team_ids, players = make_players(team_sizes)
        rosters = team_rosters(team_ids, players)
        seq = generate_turn_sequence(team_ids, players, random.Random(seed))
        for team_id, roster in rosters.items():
            spoken = [t.player_id for t in seq.turns if t.team_id == team_id]
            assert spoken == [roster[i % len(roster)] for i in range(len(spoken))]

    def test_team_order_is_fixed_for_whole_game(self):
        team_ids, players = make_players([2, 3, 2])
        seq = generate_turn_sequence(team_ids, players, random.Random(3))
        order = [t.team_id for t in seq.turns[:3]]
        assert sorted(order) == sorted(team_ids)
        assert [t.team_id for t in seq.turns] == [order[i % 3] for i in range(len(seq.turns))]

    def test_smaller_team_repeats_players(self):
        team_ids, players = make_players([2, 4])
        seq = generate_turn_sequence(team_ids, players, random.Random(0))
        small = [t.player_id for t in seq.turns if t.team_id == "team0"]
        # 4 turns per lap for every team, 3 laps.
        assert len(small) == 12
        assert small[:4] == ["team0-p0", "team0-p1", "team0-p0", "team0-p1"]

    def test_roster_follows_join_order(self):
        players = [
            Player(id="b", name="B", team_id="t1", joined_at=2),
            Player(id="a", name="A", team_id="t1", joined_at=1),
            Player(id="c", name="C", team_id="t2", joined_at=1),
            Player(id="d", name="D", team_id="t2", joined_at=1),
            Player(id="x", name="X", team_id=None, joined_at=0),
        ]
        assert team_rosters(["t1", "t2"], players) == {"t1": ["a", "b"], "t2": ["c", "d"]}

    def test_team_without_players_is_rejected(self):
        team_ids, players = make_players([2, 2])
        with pytest.raises(ValueError):
            generate_turn_sequence(team_ids + ["empty"], players)

    def test_no_teams_is_rejected(self):
        with pytest.raises(ValueError):
            generate_turn_sequence([], [])


class TestSelfExtension:
    @given(team_sizes=team_size_lists, seed=st.integers(min_value=0, max_value=10**6))
    @settings(max_examples=50)
    def test_extension_continues_team_order_and_rosters(self, team_sizes, seed):
        team_ids, players = make_players(team_sizes)
        rosters = team_rosters(team_ids, players)
        seq = generate_turn_sequence(team_ids, players, random.Random(seed))
        lap = max(team_sizes) * len(team_sizes)

        extended = extend_sequence(seq)
        assert len(extended.turns) == len(seq.turns) + lap
        assert extended.turns[:len(seq.turns)] == seq.turns

        order = [t.team_id for t in seq.turns[:len(team_ids)]]
        assert [t.team_id for t in extended.turns] == [
            order[i % len(order)] for i in range(len(extended.turns))
        ]
        for team_id, roster in rosters.items():
            spoken = [t.player_id for t in extended.turns if t.team_id == team_id]
            assert spoken == [roster[i % len(roster)] for i in range(len(spoken))]

    def test_cursor_advances_by_one(self):
        team_ids, players = make_players([2, 2])
        seq = generate_turn_sequence(team_ids, players, random.Random(5))
        nxt = advance_cursor(seq)
        assert nxt.current_index == 1
        assert nxt.turns == seq.turns

    def test_cursor_never_runs_out(self):
        team_ids, players = make_players([2, 3])
        seq = generate_turn_sequence(team_ids, players, random.Random(9))
        original_length = len(seq.turns)
        for _ in range(original_length * 2):
            seq = advance_cursor(seq)
        assert seq.current_index == original_length * 2
        assert len(seq.turns) > seq.current_index
        for prev, nxt in zip(seq.turns, seq.turns[1:]):
            assert prev.team_id != nxt.team_id

    def test_extend_partial_sequence_resumes_each_cursor(self):
        seq = TurnSequence.model_validate({
            "turns": [
                {"teamId": "a", "playerId": "a1"},
                {"teamId": "b", "playerId": "b1"},
                {"teamId": "a", "playerId": "a2"},
                {"teamId": "b", "playerId": "b2"},
                {"teamId": "a", "playerId": "a3"},
                {"teamId": "b", "playerId": "b1"},
            ],
            "currentIndex": 5,
        })
        extended = extend_sequence(seq)
        appended = [(t.team_id, t.player_id) for t in extended.turns[6:]]
        assert appended == [
            ("a", "a1"), ("b", "b2"), ("a", "a2"), ("b", "b1"), ("a", "a3"), ("b", "b2"),
        ]
        assert extended.current_index == 5

    def test_empty_sequence_cannot_extend(self):
        with pytest.raises(ValueError):
            extend_sequence(TurnSequence())
