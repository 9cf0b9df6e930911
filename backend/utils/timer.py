"""
Turn-timer arithmetic.

Remaining time is never stored. Every observer derives it from the game's
turnStartTime and the store's clock, so clients with skewed local clocks agree.
"""
from typing import Optional

from models.game import Game, TurnState


def elapsed_seconds(turn_start_time: int, now_ms: int) -> int:
    return max(0, (now_ms - turn_start_time) // 1000)


def time_remaining(game: Game, now_ms: int) -> int:
    """Seconds left in the active turn; the full round length while paused."""
    length = game.settings.round_length_seconds
    if game.turn_state != TurnState.ACTIVE or game.turn_start_time is None:
        return length
    return max(0, length - elapsed_seconds(game.turn_start_time, now_ms))


def penalised_start_time(turn_start_time: int, penalty_seconds: int) -> int:
    # Moving the start backwards is how a skip penalty shortens the turn.
    return turn_start_time - penalty_seconds * 1000


def skip_exhausts_turn(game: Game, now_ms: int) -> bool:
    return time_remaining(game, now_ms) - game.settings.skip_penalty_seconds <= 0


def deadline_ms(game: Game) -> Optional[int]:
    if game.turn_start_time is None:
        return None
    return game.turn_start_time + game.settings.round_length_seconds * 1000
