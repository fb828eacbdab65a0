import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from app.errors import ValidationError
from app.utils.time import as_aware

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
PASS_QUALITY = 3
MAX_QUALITY = 5


@dataclass
class ReviewState:
    repetitions: int = 0
    easeFactor: float = DEFAULT_EASE_FACTOR
    interval: int = 1

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "ReviewState":
        return cls(
            repetitions=int(doc.get("repetitions") or 0),
            easeFactor=float(doc.get("easeFactor") or DEFAULT_EASE_FACTOR),
            interval=int(doc.get("interval") or 1),
        )


def initial_state(now: datetime) -> dict[str, Any]:
    return {
        "repetitions": 0,
        "easeFactor": DEFAULT_EASE_FACTOR,
        "interval": 1,
        "nextReviewAt": now,
        "lastReviewedAt": None,
    }


def validate_quality(quality: Any) -> int:
    # bool is an int subclass; True/False are not ratings
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise ValidationError("quality must be an integer in range 0..5")
    if quality < 0 or quality > MAX_QUALITY:
        raise ValidationError("quality must be an integer in range 0..5")
    return quality


def next_ease_factor(ease: float, quality: int) -> float:
    miss = MAX_QUALITY - quality
    return max(MIN_EASE_FACTOR, ease + (0.1 - miss * (0.08 + miss * 0.02)))


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; intervals round .5 up
    return int(math.floor(value + 0.5))


def apply_review(state: ReviewState, quality: int, now: datetime) -> dict[str, Any]:
    """Compute the next SM-2 state for one review.

    Failed recall (quality below 3) resets the streak and schedules the card for
    tomorrow. Passed recall grows the interval 1 -> 6 -> interval * ease. The ease
    factor is updated on every review and never drops below 1.3.
    """
    quality = validate_quality(quality)

    repetitions = state.repetitions
    interval = state.interval

    if quality < PASS_QUALITY:
        repetitions = 0
        interval = 1
    else:
        if repetitions == 0:
            interval = 1
        elif repetitions == 1:
            interval = 6
        else:
            interval = max(1, _round_half_up(interval * state.easeFactor))
        repetitions += 1

    ease = next_ease_factor(state.easeFactor, quality)

    return {
        "repetitions": int(repetitions),
        "interval": int(interval),
        "easeFactor": ease,
        "nextReviewAt": now + timedelta(days=interval),
    }


def due_cards(cards: Iterable[dict[str, Any]], now: datetime) -> list[dict[str, Any]]:
    now = as_aware(now)
    out: list[dict[str, Any]] = []
    for card in cards:
        next_review = card.get("nextReviewAt")
        if next_review is None or as_aware(next_review) <= now:
            out.append(card)
    return out
