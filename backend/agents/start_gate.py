"""
Start verification — pure predicate over a snapshot of the lobby.

Every rule is evaluated independently and reported in a fixed order so the
lobby can render a complete checklist.
"""
from typing import List, Sequence

from models.game import Team, Player, Word

MIN_TEAMS = 2
MIN_PLAYERS_PER_TEAM = 2


def explain(
    teams: Sequence[Team],
    players: Sequence[Player],
    words: Sequence[Word],
    is_host: bool,
    word_limit: int,
) -> List[str]:
    errors: List[str] = []

    if not is_host:
        errors.append("Only the host can start the game")

    if len(teams) < MIN_TEAMS:
        errors.append(f"Need at least {MIN_TEAMS} teams to start the game")

    short_teams = [
        t.name for t in teams
        if sum(1 for p in players if p.team_id == t.id) < MIN_PLAYERS_PER_TEAM
    ]
    if short_teams:
        errors.append(
            f"The following teams need at least {MIN_PLAYERS_PER_TEAM} players: "
            f"{', '.join(short_teams)}"
        )

    # Checked as "at least": the word pool quota already blocks extra words.
    word_counts: dict = {}
    for w in words:
        word_counts[w.submitted_by_player_id] = word_counts.get(w.submitted_by_player_id, 0) + 1
    short_players = [p.name for p in players if word_counts.get(p.id, 0) < word_limit]
    if short_players:
        errors.append(
            f"The following players need to add {word_limit} words: "
            f"{', '.join(short_players)}"
        )

    return errors


def can_start(
    teams: Sequence[Team],
    players: Sequence[Player],
    words: Sequence[Word],
    is_host: bool,
    word_limit: int,
) -> bool:
    return not explain(teams, players, words, is_host, word_limit)
