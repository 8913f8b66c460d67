"""
Word drip: fake a token stream from an already complete reply.
Used by backends that have no native streaming API.
"""

from __future__ import annotations

import asyncio
import random
from typing import AsyncIterator


def split_words(text: str) -> list[str]:
    """Split on single spaces, keeping the separator on every word but the last."""
    words = text.split(" ")
    return [w + " " for w in words[:-1]] + [words[-1]]


async def drip_words(
    text: str,
    min_delay: float = 0.03,
    max_delay: float = 0.07,
) -> AsyncIterator[str]:
    """Yield `text` word by word with a random pause between words."""
    if not text:
        return
    chunks = split_words(text)
    for i, chunk in enumerate(chunks):
        if chunk:
            yield chunk
        if max_delay > 0 and i < len(chunks) - 1:
            await asyncio.sleep(random.uniform(min_delay, max_delay))
