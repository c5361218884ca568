"""Optional editorial blurbs generated through the OpenAI chat completions API.

The prompt shape is chosen deterministically per restaurant so repeated runs
send the same template for the same record. The generated prose itself is not
deterministic.
"""

import logging
from typing import Any, Optional

from openai import OpenAI

from enricher.core.coerce import clean
from enricher.core.ratelimit import RateLimiter
from enricher.models import DescriptionContext

logger = logging.getLogger(__name__)

PROMPT_TEMPLATES = (
    "Write a tight 60-90 word editorial blurb for a {city} restaurant landing page.\n"
    "Name: {name}\nCuisine: {cuisine}\nArea: {area}\n"
    "Tone: energetic but classy, no fluff, no emojis. Avoid repeating the name more than once.",
    "In 60-90 words, tell a diner in {city} why {name} is worth booking.\n"
    "Cuisine: {cuisine}\nNeighbourhood: {area}\n"
    "Keep it warm and specific, no emojis, no superlatives you cannot back up.",
    "Describe {name}, a {cuisine} spot in {area}, for a curated {city} dining guide.\n"
    "Length: 60-90 words. Voice: confident, understated, no emojis, no exclamation marks.",
    "Write a 60-90 word introduction to {name} ({cuisine}, {area}) for food lovers browsing {city} restaurants.\n"
    "Focus on atmosphere and what to order. Mention the name at most once. No emojis.",
)


def rolling_hash(key: str) -> int:
    """32-bit rolling hash: ``h = (h * 31 + ord(ch)) mod 2**32`` over the characters of ``key``."""
    value = 0
    for char in key:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return value


def prompt_variant_index(key: str, variants: int = len(PROMPT_TEMPLATES)) -> int:
    if variants <= 0:
        raise ValueError("variants must be positive")
    return rolling_hash(key) % variants


def variant_key(context: DescriptionContext) -> str:
    return f"{clean(context.slug)}|{clean(context.name)}"


def build_prompt(context: DescriptionContext, default_city: str = "London") -> str:
    template = PROMPT_TEMPLATES[prompt_variant_index(variant_key(context))]
    return template.format(
        name=clean(context.name),
        cuisine=clean(context.cuisine) or "Restaurant",
        area=clean(context.area) or default_city,
        city=default_city,
    )


class DescriptionGenerator:
    """Generate descriptions, returning an empty string when disabled or on failure."""

    def __init__(
        self,
        api_key: str = "",
        *,
        model: str = "gpt-4o-mini",
        default_city: str = "London",
        temperature: float = 0.6,
        limiter: Optional[RateLimiter] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.model = model
        self.default_city = default_city
        self.temperature = temperature
        self.limiter = limiter
        self._client = client
        if self._client is None and api_key:
            self._client = OpenAI(api_key=api_key)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _complete(self, prompt: str) -> str:
        response = self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return clean(choices[0].message.content)

    def generate(self, context: DescriptionContext) -> str:
        if not self.enabled:
            return ""
        prompt = build_prompt(context, self.default_city)
        try:
            if self.limiter is not None:
                return self.limiter.schedule(self._complete, prompt)
            return self._complete(prompt)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Description generation failed for %s: %s", context.name, exc)
            return ""
