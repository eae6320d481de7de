"""
Token estimation and budget tracking.

Estimates are a fixed approximation of one token per four characters,
not a tokenizer.
"""

import math
from typing import List


CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate the token cost of a piece of text."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TokenBudget:
    """
    Greedy packer for text pieces under a token limit.

    A piece is accepted only if its estimated cost fits in what remains;
    rejected pieces cost nothing.
    """

    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0
        self.parts: List[str] = []

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    def fits(self, cost: int) -> bool:
        return self.used + cost <= self.limit

    def try_add(self, text: str) -> bool:
        """Append text if its cost fits; return whether it was added."""
        cost = estimate_tokens(text)
        if not self.fits(cost):
            return False
        self.parts.append(text)
        self.used += cost
        return True

    def try_add_group(self, texts: List[str]) -> bool:
        """Append all texts or none, charged as one piece."""
        cost = sum(estimate_tokens(text) for text in texts)
        if not self.fits(cost):
            return False
        self.parts.extend(texts)
        self.used += cost
        return True

    def render(self) -> str:
        return "\n".join(self.parts)

    def __len__(self) -> int:
        return len(self.parts)
