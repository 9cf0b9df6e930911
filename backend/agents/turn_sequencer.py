"""
Turn Sequencer — Pure deterministic Python, no store access.

Builds the (team, player) describer order once at game start. Teams are
shuffled a single time; each lap is a round robin across teams of
max_team_size * team_count steps with an independent cursor per team, so
players on smaller teams simply come round more often.

The sequence is consumed strictly forward. When the cursor would run past the
stored turns, one more lap is appended, derived from the stored turns alone.
"""
import logging
import random
from typing import Dict, List, Optional, Sequence

from models.game import Player, Turn, TurnSequence

logger = logging.getLogger(__name__)

# Laps generated up front at game start.
SUPER_ROUNDS = 3


def team_rosters(team_ids: Sequence[str], players: Sequence[Player]) -> Dict[str, List[str]]:
    """Player ids per team, in join order (ties broken by id)."""
    ordered = sorted(players, key=lambda p: (p.joined_at, p.id))
    return {
        team_id: [p.id for p in ordered if p.team_id == team_id]
        for team_id in team_ids
    }


def _lap(
    team_order: List[str],
    rosters: Dict[str, List[str]],
    cursors: Dict[str, int],
) -> List[Turn]:
    max_team_size = max(len(rosters[t]) for t in team_order)
    turns: List[Turn] = []
    for step in range(max_team_size * len(team_order)):
        team_id = team_order[step % len(team_order)]
        roster = rosters[team_id]
        turns.append(Turn(team_id=team_id, player_id=roster[cursors[team_id]]))
        cursors[team_id] = (cursors[team_id] + 1) % len(roster)
    return turns


def generate_turn_sequence(
    team_ids: Sequence[str],
    players: Sequence[Player],
    rng: Optional[random.Random] = None,
) -> TurnSequence:
    """
    Full turn order for a game. Every team in team_ids must have at least one
    player; the start gate guarantees two.
    """
    if not team_ids:
        raise ValueError("Cannot sequence turns without teams")
    rosters = team_rosters(team_ids, players)
    empty = [t for t, roster in rosters.items() if not roster]
    if empty:
        raise ValueError(f"Teams without players cannot be scheduled: {empty}")

    team_order = list(team_ids)
    (rng or random).shuffle(team_order)

    cursors = {team_id: 0 for team_id in team_order}
    turns: List[Turn] = []
    for _ in range(SUPER_ROUNDS):
        turns.extend(_lap(team_order, rosters, cursors))
    return TurnSequence(turns=turns, current_index=0)


def extend_sequence(sequence: TurnSequence) -> TurnSequence:
    """
    Append one lap. Team order is the order teams first appear; each roster
    is its players in first-appearance order, and each team's cursor resumes
    from how many turns that team has had so far.
    """
    if not sequence.turns:
        raise ValueError("Cannot extend an empty turn sequence")
    team_order: List[str] = []
    rosters: Dict[str, List[str]] = {}
    counts: Dict[str, int] = {}
    for turn in sequence.turns:
        if turn.team_id not in rosters:
            team_order.append(turn.team_id)
            rosters[turn.team_id] = []
        if turn.player_id not in rosters[turn.team_id]:
            rosters[turn.team_id].append(turn.player_id)
        counts[turn.team_id] = counts.get(turn.team_id, 0) + 1

    cursors = {t: counts[t] % len(rosters[t]) for t in team_order}
    turns = list(sequence.turns) + _lap(team_order, rosters, cursors)
    return TurnSequence(turns=turns, current_index=sequence.current_index)


def advance_cursor(sequence: TurnSequence) -> TurnSequence:
    """Move to the next turn, extending the sequence when it would run out."""
    next_index = sequence.current_index + 1
    if next_index >= len(sequence.turns):
        sequence = extend_sequence(sequence)
        logger.info(f"Turn sequence extended to {len(sequence.turns)} turns")
    return TurnSequence(turns=sequence.turns, current_index=next_index)
