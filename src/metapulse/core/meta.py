"""Keyword-based narrative ("meta") labelling of token names."""

from __future__ import annotations

import re
from typing import Optional

from .models import MetaLabel

META_PATTERNS: list[tuple[str, re.Pattern, int]] = [
    # Viral potential
    ("ai-agents", re.compile(r"\b(ai|agent|gpt|llm|claude|gemini|neural|bot|assistant|chat|openai)", re.I), 75),
    ("frogs", re.compile(r"\b(pepe|frog|kermit|toad|ribbit|amphibian)", re.I), 72),
    ("celeb", re.compile(r"\b(elon|trump|taylor|mrbeast|kardash|kanye|bieber|celebrity)", re.I), 70),
    # Seasonal
    ("halloween", re.compile(r"\b(spook|ghost|pumpkin|witch|vampire|zombie|skeleton|haunted)", re.I), 68),
    ("gaming", re.compile(r"\b(game|minecraft|fortnite|esport|gamer|play|arena|quest|pixel)", re.I), 68),
    # Memes
    ("doge-meme", re.compile(r"\b(doge|shiba|bonk|inu|dog|puppy|woof|bark)", re.I), 70),
    ("meme", re.compile(r"\b(meme|viral|wojak|chad|based|cringe|gigachad|sigma)", re.I), 65),
    # Finance
    ("defi", re.compile(r"\b(defi|yield|farm|liquidity|stake|swap|pool|vault|apy)", re.I), 65),
    # Other
    ("anime", re.compile(r"\b(anime|manga|kawaii|waifu|naruto|pokemon|otaku)", re.I), 65),
    ("politics", re.compile(r"\b(politic|election|vote|govern|democrat|republican)", re.I), 60),
    ("sports", re.compile(r"\b(sport|football|basketball|soccer|nba|nfl|athlete)", re.I), 60),
    ("music", re.compile(r"\b(music|song|album|concert|festival|dj|artist|rapper)", re.I), 60),
    ("art", re.compile(r"\b(art|nft|artist|paint|canvas|creative|design)", re.I), 60),
    ("tech", re.compile(r"\b(tech|blockchain|web3|protocol|defi|crypto|solana)", re.I), 60),
]

SPAM_PATTERN = re.compile(r"\b(test|sample|demo|xxx|scam|rug)\b", re.I)

MULTI_MATCH_BOOST = 5
MAX_META_SCORE = 85
SPAM_META_SCORE = 20
UNKNOWN_META_SCORE = 45


def label_meta(
    name: Optional[str] = None,
    symbol: Optional[str] = None,
    description: Optional[str] = None,
) -> MetaLabel:
    """First matching category wins; a second keyword hit adds a small boost."""
    text = f"{name or ''} {symbol or ''} {description or ''}".lower()

    for label, pattern, base_score in META_PATTERNS:
        matches = pattern.findall(text)
        if matches:
            boost = MULTI_MATCH_BOOST if len(matches) > 1 else 0
            return MetaLabel(
                label=label,
                meta_score=min(MAX_META_SCORE, base_score + boost),
                reason=f"Strong {label} signals detected - potential trend match",
            )

    if SPAM_PATTERN.search(text):
        return MetaLabel(label="unknown", meta_score=SPAM_META_SCORE, reason="Potential spam detected - low quality signals")

    return MetaLabel(label="unknown", meta_score=UNKNOWN_META_SCORE, reason="No strong meta pattern - needs more data")
