"""
reaction.py — Reaction vocabulary and schemas.

The vocabulary is fixed and maps onto a sentiment scale symmetric
around zero: heart is the strongest positive, angry the strongest
negative. There is no neutral choice.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ReactionChoice(str, Enum):
    heart = "heart"
    like = "like"
    check = "check"
    question = "question"
    sad = "sad"
    angry = "angry"

    @property
    def sentiment(self) -> int:
        return CHOICE_TO_SENTIMENT[self]


CHOICE_TO_SENTIMENT: dict[ReactionChoice, int] = {
    ReactionChoice.heart: 3,
    ReactionChoice.like: 2,
    ReactionChoice.check: 1,
    ReactionChoice.question: -1,
    ReactionChoice.sad: -2,
    ReactionChoice.angry: -3,
}


class ReactRequest(BaseModel):
    choice: ReactionChoice


class ReactionOut(BaseModel):
    by: str
    to: str
    choice: ReactionChoice


class ReactionSummary(BaseModel):
    """GET /api/v1/posts/{post_id}/reactions"""

    post_id: str
    reactions: list[ReactionOut]
    counts: dict[str, int]
    average_sentiment: Optional[float] = None  # plain mean, None when no reactions
    score: float                                # time-decayed aggregate


class ReactResponse(BaseModel):
    msg: str
    sentiment: Optional[float] = None
    score: float
    region: Optional[str] = None  # heatmap bucket, None when not applicable
