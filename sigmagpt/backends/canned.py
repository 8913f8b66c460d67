"""
Canned-response backend.

Lets the demo run with zero credentials. It is a keyword matcher, not a model:
the newest user message is lowercased and checked against a few category
patterns, and one reply from that category is picked at random.
"""

from __future__ import annotations

import random
import re

from sigmagpt.backends.base import BaseBackend, BackendResponse, latest_user_message
from sigmagpt.backends.drip import drip_words

GREETING = (
    "Hello! I'm SigmaGPT running in demo mode. Ask me anything and I'll do my best.\n"
    "Tip: configure an OpenAI or Gemini API key for real AI answers.",
    "Hi there! Nice to meet you.\n"
    "I'm currently answering from a small set of built-in replies, but I'm happy to chat.",
    "Hey! Welcome to SigmaGPT.\n"
    "No AI provider is configured right now, so my answers are canned, but the chat works end to end.",
)

CAPABILITIES = (
    "Here is what this demo can do:\n"
    "- Keep several conversations in memory\n"
    "- Stream replies word by word\n"
    "- Switch to OpenAI or Gemini as soon as an API key is configured",
    "Right now I'm a fallback responder. I can show off the chat interface, streaming and "
    "conversation history.\nWith a provider key configured I can answer questions, write code and more.",
)

SPACE = (
    "Space is fascinating! The observable universe is about 93 billion light-years across "
    "and holds on the order of two trillion galaxies.\n"
    "Connect a real AI provider and I can go much deeper.",
    "Fun fact: a day on Venus is longer than its year. Venus takes about 243 Earth days to "
    "rotate once but only about 225 to orbit the Sun.",
    "Light from the Sun takes roughly 8 minutes and 20 seconds to reach Earth, so you always "
    "see the Sun as it was a few minutes ago.",
)

PROGRAMMING = (
    "Programming question! In demo mode I can't write real code, but here's a general tip:\n"
    "break the problem into small functions and test each one on its own.",
    "I'd love to help with code. Once an OpenAI or Gemini key is configured I can explain, "
    "write and debug code in many languages.\nFor now: read the error message carefully, it "
    "usually points right at the problem.",
)

MATH = (
    "Looks like a math question. In demo mode I can't calculate reliably, so please double-check "
    "with a calculator.\nWith a real AI provider connected I can walk through the steps.",
    "Numbers! I'm running on canned replies right now, so I can't solve this one properly. "
    "Configure a provider key and ask again.",
)

CATEGORIES: list[tuple[re.Pattern, tuple[str, ...]]] = [
    (re.compile(r"\b(hello|hi|hey|greetings|good (morning|afternoon|evening))\b"), GREETING),
    (re.compile(r"(what can you do|who are you|what are you|your capabilities|help me)"), CAPABILITIES),
    (re.compile(r"\b(space|planet|planets|star|stars|galaxy|universe|astronomy|moon|sun|nasa|mars)\b"), SPACE),
    (re.compile(r"\b(code|coding|program|programming|python|javascript|java|function|bug|debug|api)\b"), PROGRAMMING),
    (re.compile(r"(\d+\s*[-+*/x]\s*\d+|\b(math|calculate|equation|sum|multiply|divide)\b)"), MATH),
]

GENERIC = (
    'I understand you\'re asking about "{message}". I\'m running in demo mode without an AI '
    "provider, but the whole chat pipeline is working.",
    'Thanks for your message: "{message}". Full AI answers become available once an OpenAI or '
    "Gemini API key is configured.",
    'I see you asked: "{message}". This reply comes from the built-in fallback responder, which '
    "keeps SigmaGPT usable with no credentials at all.",
    'Your question "{message}" is interesting! I\'m a simplified fallback right now, which shows '
    "SigmaGPT can switch between AI backends.",
)


def pick_response(user_message: str, rng: random.Random | None = None) -> str:
    """Choose a canned reply for the message."""
    rng = rng or random
    text = user_message.lower()
    for pattern, candidates in CATEGORIES:
        if pattern.search(text):
            return rng.choice(candidates)
    return rng.choice(GENERIC).format(message=user_message)


class CannedBackend(BaseBackend):
    """Null-object backend: always answers, never fails."""

    provider = "canned"

    def __init__(
        self,
        name: str = "canned",
        min_delay: float = 0.03,
        max_delay: float = 0.07,
        rng: random.Random | None = None,
    ):
        super().__init__(name)
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._rng = rng

    async def generate(self, history: list[dict]) -> BackendResponse:
        content = pick_response(latest_user_message(history), self._rng)
        return BackendResponse(ok=True, content=content, backend_name=self.name)

    async def generate_stream(self, history: list[dict]):
        response = await self.generate(history)
        async for chunk in drip_words(response.content, self.min_delay, self.max_delay):
            yield chunk
