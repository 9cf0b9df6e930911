"""Join-code helpers. Codes avoid look-alike characters (no 0/O, 1/I/L)."""
import random
import re
from typing import Optional

CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 4

_CODE_RE = re.compile(f"^[{CODE_ALPHABET}]{{{CODE_LENGTH}}}$")


def generate_game_code(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_game_code(code: str) -> str:
    return (code or "").strip().upper()


def is_valid_game_code(code: str) -> bool:
    return bool(_CODE_RE.match(normalize_game_code(code)))
