"""
Word Pool Manager.

Owns word submission (with the per-player quota), per-round guessed flags and
random selection of the next unguessed word. Each round has its own flag, so
nothing is ever reset between rounds and words are never deleted mid-game.
"""
import logging
import random
from typing import List, Optional

from models.errors import NotOwner, QuotaExceeded, InvalidTransition, InvalidInput
from models.game import GameStatus, RoundCounts, Word
from services.game_records import GameRecords, words_path

logger = logging.getLogger(__name__)

MAX_WORD_LENGTH = 60


def _round_field(round_number: int) -> str:
    try:
        return Word.round_field(round_number)
    except ValueError as exc:
        raise InvalidInput(str(exc)) from exc


class WordPoolManager:
    def __init__(self, records: GameRecords, suggester=None, rng: Optional[random.Random] = None):
        self.records = records
        self.suggester = suggester
        self._rng = rng or random.Random()

    # ── Submission ────────────────────────────────────────────────────────────

    async def submit(self, game_id: str, player_id: str, text: str) -> Word:
        text = (text or "").strip()
        if not text:
            raise InvalidInput("Word cannot be empty")
        if len(text) > MAX_WORD_LENGTH:
            raise InvalidInput(f"Word cannot be longer than {MAX_WORD_LENGTH} characters")

        game = await self.records.get_game(game_id)
        if game.state != GameStatus.LOBBY:
            raise InvalidTransition("Words can only be added in the lobby")
        await self.records.get_player(game_id, player_id)

        existing = await self.records.words_by_player(game_id, player_id)
        limit = game.settings.word_count_per_person
        if len(existing) >= limit:
            raise QuotaExceeded(f"You can only add {limit} words")

        word = await self.records.create_word(
            game_id, Word(text=text, submitted_by_player_id=player_id)
        )
        logger.info(f"[{game_id}] Player {player_id} added word {word.id} ({len(existing) + 1}/{limit})")
        return word

    async def add_suggested(self, game_id: str, player_id: str, description: str = "") -> List[Word]:
        """Fill the player's remaining quota with suggested words."""
        if self.suggester is None:
            raise InvalidTransition("Word suggestions are not available")
        game = await self.records.get_game(game_id)
        existing = await self.records.words_by_player(game_id, player_id)
        remaining = game.settings.word_count_per_person - len(existing)
        if remaining <= 0:
            raise QuotaExceeded(f"You can only add {game.settings.word_count_per_person} words")

        taken = {w.text.lower() for w in existing}
        suggestions = await self.suggester.suggest(description, remaining + len(taken))
        added: List[Word] = []
        for text in suggestions:
            if len(added) == remaining:
                break
            if text.lower() in taken:
                continue
            taken.add(text.lower())
            added.append(await self.submit(game_id, player_id, text))
        return added

    async def remove(self, game_id: str, word_id: str, requester_id: str) -> None:
        word = await self.records.get_word(game_id, word_id)
        if word.submitted_by_player_id != requester_id:
            raise NotOwner("You can only remove your own words")
        game = await self.records.get_game(game_id)
        if game.state != GameStatus.LOBBY:
            raise InvalidTransition("Words cannot be removed once the game has started")
        await self.records.delete_word(game_id, word_id)
        logger.info(f"[{game_id}] Player {requester_id} removed word {word_id}")

    async def list_by_player(self, game_id: str, player_id: str) -> List[Word]:
        return await self.records.words_by_player(game_id, player_id)

    # ── Per-round tracking ────────────────────────────────────────────────────

    async def pick_random_unguessed(
        self, game_id: str, round_number: int, exclude: Optional[str] = None
    ) -> Optional[Word]:
        """
        Uniformly random word not yet guessed this round, or None once the pool
        is exhausted. `exclude` is avoided unless it is the only word left.
        """
        _round_field(round_number)
        words = await self.records.list_words(game_id)
        candidates = [w for w in words if not w.guessed_in(round_number)]
        if not candidates:
            return None
        preferred = [w for w in candidates if w.id != exclude] or candidates
        return self._rng.choice(preferred)

    async def mark_guessed(self, game_id: str, word_id: str, round_number: int) -> None:
        field = _round_field(round_number)
        await self.records.update_word(game_id, word_id, {field: True})

    async def claim_guessed(self, game_id: str, word_id: str, round_number: int) -> Word:
        """
        mark_guessed for a live guess: rejected if the word was already guessed
        this round, checked inside the same conditional write.
        """
        field = _round_field(round_number)

        def _claim(data: dict) -> dict:
            if data.get(field):
                raise InvalidTransition("That word was already guessed this round")
            return {field: True}

        data = await self.records.store.update_with(f"{words_path(game_id)}/{word_id}", _claim)
        return Word.from_record(word_id, data)

    async def counts_for_round(self, game_id: str, round_number: int) -> RoundCounts:
        _round_field(round_number)
        words = await self.records.list_words(game_id)
        guessed = sum(1 for w in words if w.guessed_in(round_number))
        return RoundCounts(guessed=guessed, total=len(words))
