"""
Word Suggester — asks Gemini for family-friendly words from a short
description. Any failure (no key, empty reply, API error) falls back to a
fixed list of common words so the lobby never stalls on it.
"""
import logging
import random
import re
from typing import Any, List, Optional

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

FALLBACK_WORDS: List[str] = [
    "pizza", "dog", "cat", "beach", "mountain", "guitar", "piano", "dance",
    "sing", "jump", "run", "swim", "bicycle", "car", "airplane", "train",
]

_WORD_RE = re.compile(r"^[A-Za-z][A-Za-z'\-]*$")

PROMPT_TEMPLATE = """Generate exactly {count} simple, family-friendly words based on this description: "{description}".
If no description is provided, generate random common nouns or verbs suitable for a family game.
Rules:
- Each word should be a single word (no phrases)
- Words should be easy to describe or act out
- Keep words family-friendly and appropriate for all ages (unless specified otherwise in the description)
- Return ONLY the words, one per line, nothing else
- No numbers, special characters, or punctuation"""


class WordSuggester:
    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.0-flash-lite",
        client: Optional[Any] = None,
        rng: Optional[random.Random] = None,
    ):
        self.model = model
        self._client = client
        if self._client is None and api_key:
            self._client = genai.Client(api_key=api_key)
        self._rng = rng or random.Random()

    async def _call_gemini(self, prompt: str) -> Optional[str]:
        """Return raw text from a single generate_content call, or None on failure."""
        if self._client is None:
            logger.warning("[words] GEMINI_API_KEY not set — using fallback words")
            return None
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=1.0,
                    max_output_tokens=200,
                ),
            )
            return response.text.strip() if response.text else None
        except Exception as exc:
            logger.error("[words] Gemini call failed: %s", exc)
            return None

    @staticmethod
    def parse(raw: str, count: int) -> List[str]:
        words: List[str] = []
        seen = set()
        for line in raw.splitlines():
            word = line.strip().strip("-*•.0123456789) ").strip()
            if not word or not _WORD_RE.match(word) or word.lower() in seen:
                continue
            seen.add(word.lower())
            words.append(word)
            if len(words) == count:
                break
        return words

    async def suggest(self, description: str = "", count: int = 5) -> List[str]:
        if count <= 0:
            return []
        prompt = PROMPT_TEMPLATE.format(count=count, description=description.strip())
        raw = await self._call_gemini(prompt)
        words = self.parse(raw, count) if raw else []

        if len(words) < count:
            taken = {w.lower() for w in words}
            spare = [w for w in FALLBACK_WORDS if w not in taken]
            self._rng.shuffle(spare)
            padding = spare[: count - len(words)]
            words.extend(padding)
            logger.info(f"[words] Added {len(padding)} fallback words")
        return words
