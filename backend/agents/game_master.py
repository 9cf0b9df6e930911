"""
Game Master Agent — Pure deterministic Python, no LLM.

Responsibilities:
- Game state transitions (lobby → round1 → round2 → round3 → finished)
- Turn state transitions (paused ⇄ active) and describer rotation
- Correct guesses, skips with time penalty, time-up
- Start verification against freshly read lobby state

Every Game-record write goes through the store's conditional update, with the
expected turn re-checked against the fresh record, so a transition computed
from a stale snapshot is rejected instead of applied twice.
"""
import logging
import random
from typing import Callable, List, Optional

from agents import start_gate
from agents.score_ledger import ScoreLedger
from agents.turn_sequencer import advance_cursor, generate_turn_sequence
from agents.word_pool import WordPoolManager
from models.errors import InvalidInput, InvalidTransition, NotOwner, PreconditionFailed
from models.game import (
    Game, GameStatus, LastGuessedWord, MAX_ROUNDS, ROUND_STATES,
    TurnOutcome, TurnState,
)
from services.game_records import GameRecords, game_path
from utils.timer import penalised_start_time, skip_exhausts_turn

logger = logging.getLogger(__name__)

Transition = Callable[[Game], Game]


# ── Pure transitions (Game → Game) ─────────────────────────────────────────────

def _with_last_speaker(game: Game) -> Game:
    speakers = dict(game.last_speaker_ids)
    if game.active_team_id and game.active_player_id:
        speakers[game.active_team_id] = game.active_player_id
    return game.model_copy(update={"last_speaker_ids": speakers})


def advance_turn_state(game: Game) -> Game:
    sequence = advance_cursor(game.turn_sequence)
    turn = sequence.current
    return game.model_copy(update={
        "turn_sequence": sequence,
        "active_team_id": turn.team_id,
        "active_player_id": turn.player_id,
        "turn_state": TurnState.PAUSED,
        "turn_start_time": None,
    })


def advance_round_state(game: Game) -> Game:
    if not game.in_round:
        raise InvalidTransition("Game is not in a round")
    if game.current_round >= MAX_ROUNDS:
        raise InvalidTransition(f"Already in round {MAX_ROUNDS}")
    next_round = game.current_round + 1
    # The next round opens with a fresh turn rather than repeating the last one.
    game = advance_turn_state(_with_last_speaker(game))
    return game.model_copy(update={
        "current_round": next_round,
        "state": ROUND_STATES[next_round],
    })


def end_game_state(game: Game) -> Game:
    # Active team/player are left as they were.
    return game.model_copy(update={
        "state": GameStatus.FINISHED,
        "turn_state": None,
        "turn_start_time": None,
    })


def time_up_state(game: Game) -> Game:
    return advance_turn_state(_with_last_speaker(game))


def complete_round_state(game: Game) -> Game:
    if game.current_round >= MAX_ROUNDS:
        return end_game_state(game)
    return advance_round_state(game)


class GameMaster:
    """
    Deterministic turn/round engine.
    Reads and writes records through the injected GameRecords repository.
    """

    def __init__(
        self,
        records: GameRecords,
        word_pool: WordPoolManager,
        score_ledger: ScoreLedger,
        rng: Optional[random.Random] = None,
    ):
        self.records = records
        self.store = records.store
        self.word_pool = word_pool
        self.score_ledger = score_ledger
        self._rng = rng or random.Random()

    # ── Commit helpers ─────────────────────────────────────────────────────────

    async def _commit(self, game_id: str, transition: Transition) -> Game:
        """Apply a transition to the freshly read Game inside a conditional write."""
        def _mutate(data: dict) -> dict:
            return transition(Game.from_record(game_id, data)).to_record()

        data = await self.store.update_with(game_path(game_id), _mutate)
        return Game.from_record(game_id, data)

    @staticmethod
    def _expect_same_turn(seen: Game, current: Game) -> None:
        seen_index = seen.turn_sequence.current_index if seen.turn_sequence else None
        current_index = current.turn_sequence.current_index if current.turn_sequence else None
        if (
            current.state != seen.state
            or current.turn_state != seen.turn_state
            or current_index != seen_index
        ):
            raise InvalidTransition("The turn has already moved on")

    @staticmethod
    def _require_round(game: Game) -> None:
        if not game.in_round:
            raise InvalidTransition(f"Game is not in a round (state: {game.state.value})")

    @staticmethod
    def _require_describer(game: Game, player_id: str) -> None:
        if player_id != game.active_player_id:
            raise NotOwner("Only the current describer can do that")

    @staticmethod
    def _require_turn_state(game: Game, state: TurnState) -> None:
        if game.turn_state != state:
            raise InvalidTransition(
                "The turn is already running" if state == TurnState.PAUSED
                else "The turn has not started"
            )

    # ── Start verification ─────────────────────────────────────────────────────

    async def verify_start(self, game_id: str, requester_id: str) -> List[str]:
        """Every violated start rule, evaluated against the store right now."""
        game = await self.records.get_game(game_id)
        teams = await self.records.list_teams(game_id)
        players = await self.records.list_players(game_id)
        words = await self.records.list_words(game_id)
        requester = next((p for p in players if p.id == requester_id), None)
        is_host = requester is not None and requester.is_host
        return start_gate.explain(
            teams, players, words, is_host, game.settings.word_count_per_person
        )

    # ── Game transitions ───────────────────────────────────────────────────────

    async def start_game(self, game_id: str, requester_id: str) -> Game:
        game = await self.records.get_game(game_id)
        if game.state != GameStatus.LOBBY:
            raise InvalidTransition("Game has already started")

        errors = await self.verify_start(game_id, requester_id)
        if errors:
            logger.warning(f"[{game_id}] Start rejected: {errors}")
            raise PreconditionFailed(errors, "Game cannot be started yet")

        teams = await self.records.list_teams(game_id)
        players = await self.records.list_players(game_id)
        sequence = generate_turn_sequence([t.id for t in teams], players, self._rng)
        first = sequence.current
        turn_order = list(dict.fromkeys(t.team_id for t in sequence.turns))

        def _start(current: Game) -> Game:
            if current.state != GameStatus.LOBBY:
                raise InvalidTransition("Game has already started")
            return current.model_copy(update={
                "state": GameStatus.ROUND1,
                "current_round": 1,
                "turn_sequence": sequence,
                "turn_order": turn_order,
                "active_team_id": first.team_id,
                "active_player_id": first.player_id,
                "turn_state": TurnState.PAUSED,
                "turn_start_time": None,
                "last_speaker_ids": {},
            })

        started = await self._commit(game_id, _start)
        logger.info(
            f"[{game_id}] Game started: {len(teams)} teams, {len(sequence.turns)} turns, "
            f"first describer {first.player_id}"
        )
        return started

    async def advance_turn(self, game_id: str) -> Game:
        def _advance(current: Game) -> Game:
            self._require_round(current)
            return advance_turn_state(current)

        game = await self._commit(game_id, _advance)
        logger.info(f"[{game_id}] Turn → {game.active_player_id} ({game.active_team_id})")
        return game

    async def advance_round(self, game_id: str) -> Game:
        game = await self._commit(game_id, advance_round_state)
        logger.info(f"[{game_id}] Round → {game.current_round}")
        return game

    async def end_game(self, game_id: str) -> Game:
        def _end(current: Game) -> Game:
            self._require_round(current)
            return end_game_state(current)

        game = await self._commit(game_id, _end)
        logger.info(f"[{game_id}] Game finished")
        return game

    # ── Turn commands (describer only) ─────────────────────────────────────────

    async def start_turn(self, game_id: str, player_id: str) -> TurnOutcome:
        game = await self.records.get_game(game_id)
        self._require_round(game)
        self._require_describer(game, player_id)
        self._require_turn_state(game, TurnState.PAUSED)
        now = await self.store.server_time_ms()

        def _start_turn(current: Game) -> Game:
            self._expect_same_turn(game, current)
            return current.model_copy(update={
                "turn_state": TurnState.ACTIVE,
                "turn_start_time": now,
            })

        game = await self._commit(game_id, _start_turn)
        word = await self.word_pool.pick_random_unguessed(game_id, game.current_round)
        logger.info(f"[{game_id}] Turn started by {player_id} (round {game.current_round})")
        return TurnOutcome(game=game, word=word)

    async def correct_guess(self, game_id: str, player_id: str, word_id: Optional[str]) -> TurnOutcome:
        if not word_id:
            raise InvalidInput("wordId is required")
        game = await self.records.get_game(game_id)
        self._require_round(game)
        self._require_describer(game, player_id)
        self._require_turn_state(game, TurnState.ACTIVE)
        round_number = game.current_round
        word = await self.records.get_word(game_id, word_id)
        if word.guessed_in(round_number):
            raise InvalidTransition("That word was already guessed this round")
        now = await self.store.server_time_ms()
        last_guessed = LastGuessedWord(text=word.text, team_id=game.active_team_id, timestamp=now)

        # The game record is written first: a turn that moved on leaves no trace.
        def _guessed(current: Game) -> Game:
            self._expect_same_turn(game, current)
            return current.model_copy(update={"last_guessed_word": last_guessed})

        previous = game.last_guessed_word
        game = await self._commit(game_id, _guessed)
        try:
            await self.word_pool.claim_guessed(game_id, word_id, round_number)
        except InvalidTransition:
            # Lost a double-tap race on the same word; put the notification back.
            def _restore(current: Game) -> Game:
                if current.last_guessed_word != last_guessed:
                    return current
                return current.model_copy(update={"last_guessed_word": previous})

            await self._commit(game_id, _restore)
            raise
        await self.score_ledger.add_points(game_id, game.active_team_id, 1)

        counts = await self.word_pool.counts_for_round(game_id, round_number)
        logger.info(
            f"[{game_id}] Correct guess by team {last_guessed.team_id} "
            f"({counts.guessed}/{counts.total} in round {round_number})"
        )
        if counts.guessed >= counts.total:
            def _complete(current: Game) -> Game:
                # A concurrent final guess may already have closed the round.
                if current.current_round != round_number or not current.in_round:
                    return current
                return complete_round_state(current)

            game = await self._commit(game_id, _complete)
            logger.info(f"[{game_id}] Round {round_number} complete → {game.state.value}")
            return TurnOutcome(game=game, round_completed=True)

        next_word = await self.word_pool.pick_random_unguessed(game_id, round_number)
        return TurnOutcome(game=game, word=next_word)

    async def skip(self, game_id: str, player_id: str, word_id: Optional[str]) -> TurnOutcome:
        game = await self.records.get_game(game_id)
        self._require_round(game)
        self._require_describer(game, player_id)
        self._require_turn_state(game, TurnState.ACTIVE)
        now = await self.store.server_time_ms()

        def _skip(current: Game) -> Game:
            self._expect_same_turn(game, current)
            # Not enough time left to pay the penalty: the skip ends the turn.
            if skip_exhausts_turn(current, now):
                return time_up_state(current)
            return current.model_copy(update={
                "turn_start_time": penalised_start_time(
                    current.turn_start_time, current.settings.skip_penalty_seconds
                ),
            })

        game = await self._commit(game_id, _skip)
        if game.turn_state == TurnState.PAUSED:
            logger.info(f"[{game_id}] Skip by {player_id} used up the turn")
            return TurnOutcome(game=game, timed_out=True)

        word = await self.word_pool.pick_random_unguessed(
            game_id, game.current_round, exclude=word_id
        )
        logger.info(f"[{game_id}] Skip by {player_id} (-{game.settings.skip_penalty_seconds}s)")
        return TurnOutcome(game=game, word=word)

    async def time_up(self, game_id: str, player_id: str) -> TurnOutcome:
        game = await self.records.get_game(game_id)
        self._require_round(game)
        self._require_describer(game, player_id)
        self._require_turn_state(game, TurnState.ACTIVE)

        def _time_up(current: Game) -> Game:
            self._expect_same_turn(game, current)
            return time_up_state(current)

        game = await self._commit(game_id, _time_up)
        logger.info(f"[{game_id}] Time up for {player_id} → next describer {game.active_player_id}")
        return TurnOutcome(game=game, timed_out=True)
