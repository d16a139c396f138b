"""Keyword-driven replies for the always-available fallback partner."""

from __future__ import annotations

import random
import re
from typing import Optional, Sequence, Tuple

# Checked in order; the first category with a matching pattern wins.
RULES: Tuple[Tuple[str, re.Pattern[str]], ...] = (
    ("greeting", re.compile(r"\b(hello|hi|hey|hiya|howdy|yo|good (morning|afternoon|evening))\b")),
    ("how_are_you", re.compile(r"\b(how are you|how r u|how are u|how's it going|how is it going|what's up|whats up|sup)\b")),
    ("name", re.compile(r"\b(your name|who are you|what should i call you)\b")),
    ("age", re.compile(r"\b(how old|your age|age)\b")),
    ("occupation", re.compile(r"\b(what do you do|your job|job|work|working|study|student|occupation)\b")),
    ("music", re.compile(r"\b(music|song|songs|band|bands|singer|listen|listening|playlist)\b")),
    ("food", re.compile(r"\b(food|eat|eating|hungry|pizza|pasta|sushi|burger|cook|cooking|dinner|lunch|breakfast)\b")),
)

RESPONSES = {
    "greeting": "Hey there! Nice to meet you. How's your day going?",
    "how_are_you": "I'm doing great, thanks for asking! How about you?",
    "name": "You can call me Sam. What should I call you?",
    "age": "I'd rather keep that a mystery. Let's just say I'm young at heart!",
    "occupation": "I spend most of my days chatting with interesting people like you. What do you do?",
    "music": "I love music! Lately I've been listening to a lot of indie and lo-fi. What's on your playlist?",
    "food": "Now I'm hungry! Pizza is always a good idea. What's your favourite dish?",
}

GENERIC_OPENERS: Tuple[str, ...] = (
    "That's interesting, tell me more!",
    "Really? I didn't know that.",
    "Haha, that's a fun way to put it.",
    "What made you think of that?",
    "I see. What else is on your mind?",
    "Cool! What do you like to do for fun?",
    "Where are you chatting from today?",
)


def classify(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for category, pattern in RULES:
        if pattern.search(lowered):
            return category
    return None


def reply(text: str, *, rng: random.Random | None = None, openers: Sequence[str] = GENERIC_OPENERS) -> str:
    category = classify(text)
    if category is not None:
        return RESPONSES[category]
    chooser = rng or random
    return chooser.choice(list(openers))
