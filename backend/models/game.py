from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from enum import Enum


MAX_ROUNDS = 3


class GameStatus(str, Enum):
    LOBBY = "lobby"
    ROUND1 = "round1"
    ROUND2 = "round2"
    ROUND3 = "round3"
    FINISHED = "finished"


# Round number -> state label. States only ever move forward through this table.
ROUND_STATES: Dict[int, GameStatus] = {
    1: GameStatus.ROUND1,
    2: GameStatus.ROUND2,
    3: GameStatus.ROUND3,
}


class TurnState(str, Enum):
    PAUSED = "paused"
    ACTIVE = "active"


class Record(BaseModel):
    """
    Base for persisted entities.
    Stored field names are camelCase (they are shared with browser clients);
    the record id is the store path segment and is never written into the body.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"}, mode="json")

    @classmethod
    def from_record(cls, record_id: str, data: Dict[str, Any]):
        return cls.model_validate({**data, "id": record_id})

    def to_public(self) -> Dict[str, Any]:
        return {"id": self.id, **self.to_record()}


class GameSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    word_count_per_person: int = Field(5, ge=1, le=20)
    round_length_seconds: int = Field(60, ge=10, le=300)
    skip_penalty_seconds: int = Field(10, ge=0)

    @model_validator(mode="after")
    def _penalty_within_round(self) -> "GameSettings":
        if self.skip_penalty_seconds > self.round_length_seconds:
            raise ValueError("skipPenaltySeconds cannot be greater than roundLengthSeconds")
        return self


class Turn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    team_id: str
    player_id: str


class TurnSequence(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    turns: List[Turn] = []
    current_index: int = 0

    @property
    def current(self) -> Turn:
        return self.turns[self.current_index]


class LastGuessedWord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str
    team_id: str
    timestamp: int


class Game(Record):
    code: str
    host_id: Optional[str] = None
    state: GameStatus = GameStatus.LOBBY
    current_round: Optional[int] = None
    active_team_id: Optional[str] = None
    active_player_id: Optional[str] = None
    turn_order: List[str] = []
    turn_state: Optional[TurnState] = None
    turn_start_time: Optional[int] = None  # store epoch ms; None while paused
    turn_sequence: Optional[TurnSequence] = None
    settings: GameSettings = Field(default_factory=GameSettings)
    last_guessed_word: Optional[LastGuessedWord] = None
    last_speaker_ids: Dict[str, str] = {}
    created_at: int = 0

    @property
    def in_round(self) -> bool:
        return self.state in ROUND_STATES.values()



class Team(Record):
    name: str
    score: int = Field(0, ge=0)


class Player(Record):
    name: str
    team_id: Optional[str] = None
    is_host: bool = False
    joined_at: int = 0


class Word(Record):
    text: str
    submitted_by_player_id: str
    guessed_in_round1: Optional[bool] = None
    guessed_in_round2: Optional[bool] = None
    guessed_in_round3: Optional[bool] = None

    @staticmethod
    def round_field(round_number: int) -> str:
        if round_number not in ROUND_STATES:
            raise ValueError(f"Round must be 1..{MAX_ROUNDS}, got {round_number}")
        return f"guessedInRound{round_number}"

    def guessed_in(self, round_number: int) -> bool:
        return bool(getattr(self, f"guessed_in_round{round_number}", None))


class RoundCounts(BaseModel):
    guessed: int
    total: int


class TurnOutcome(BaseModel):
    """Result of a turn command: the updated game plus the describer's next word."""
    game: Game
    word: Optional[Word] = None
    round_completed: bool = False
    timed_out: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "game": self.game.to_public(),
            "word": self.word.to_public() if self.word else None,
            "round_completed": self.round_completed,
            "timed_out": self.timed_out,
        }


# ── HTTP request/response models ──────────────────────────────────────────────

class CreateGameRequest(BaseModel):
    host_name: str = "Host"
    settings: Optional[GameSettings] = None


class CreateGameResponse(BaseModel):
    game_id: str
    code: str
    host_player_id: str


class JoinGameRequest(BaseModel):
    player_name: str


class JoinGameResponse(BaseModel):
    player_id: str
    game_id: str


class UpdateSettingsRequest(BaseModel):
    requester_id: str
    settings: GameSettings


class TeamRequest(BaseModel):
    requester_id: str
    name: str


class AssignTeamRequest(BaseModel):
    requester_id: str
    team_id: Optional[str] = None


class SubmitWordRequest(BaseModel):
    player_id: str
    text: str


class SuggestWordsRequest(BaseModel):
    player_id: str
    description: str = ""


class StartGameRequest(BaseModel):
    player_id: str


class TurnCommandRequest(BaseModel):
    player_id: str
    word_id: Optional[str] = None
