from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from grain.records import MoodEntry, PhotoRecord, VideoRecord
from grain.stats import mean

logger = logging.getLogger(__name__)

# Reported-mood range (1-5) a photo's expression tone is consistent with.
TONE_EXPECTED_MOOD: Dict[str, Tuple[float, float]] = {
    "joyful": (4.0, 5.0),
    "energetic": (3.5, 5.0),
    "calm": (3.0, 4.0),
    "neutral": (2.5, 3.5),
    "tense": (1.0, 2.5),
    "melancholic": (1.0, 2.0),
}

MIN_TONE_CONFIDENCE = 0.5
MOOD_TOLERANCE = 0.5


@dataclass(frozen=True)
class VisualMoodMismatch:
    photo_event_id: str
    photo_path: str
    photo_tone: str
    photo_tone_confidence: float
    reported_mood: float
    description: str
    severity: float


@dataclass(frozen=True)
class VisualSummary:
    photo_count: int = 0
    video_count: int = 0
    dominant_mood: str = "neutral"
    avg_people_count: float = 0.0
    unique_tags: List[str] = field(default_factory=list)
    mood_distribution: Dict[str, int] = field(default_factory=dict)


def detect_visual_mood_mismatches(
    photos: Sequence[PhotoRecord],
    moods: Sequence[MoodEntry],
) -> List[VisualMoodMismatch]:
    """
    Compare each analysed photo's expression tone with the day's reported mood.

    Photos without a tone, with tone confidence under 0.5, or with a tone we
    have no expectation for are skipped.
    """
    if not photos or not moods:
        return []

    avg_mood = mean([m.score for m in moods])
    results: List[VisualMoodMismatch] = []

    for photo in photos:
        if not photo.tone or photo.tone_confidence is None:
            continue
        if photo.tone_confidence < MIN_TONE_CONFIDENCE:
            continue
        expected = TONE_EXPECTED_MOOD.get(photo.tone)
        if expected is None:
            logger.warning("Photo %s has unknown tone %r; skipping", photo.id, photo.tone)
            continue

        low, high = expected
        if low - MOOD_TOLERANCE <= avg_mood <= high + MOOD_TOLERANCE:
            continue

        direction = (
            "You reported feeling better than you looked."
            if avg_mood > high
            else "You reported feeling worse than you looked."
        )
        midpoint = (low + high) / 2
        severity = min(0.5 + photo.tone_confidence * 0.3 + abs(avg_mood - midpoint) * 0.1, 0.95)
        results.append(
            VisualMoodMismatch(
                photo_event_id=photo.event_id,
                photo_path=photo.file_path,
                photo_tone=photo.tone,
                photo_tone_confidence=photo.tone_confidence,
                reported_mood=avg_mood,
                description=(
                    f"Photo shows {photo.tone} expression (confidence: "
                    f"{photo.tone_confidence * 100:.0f}%), but reported mood was "
                    f"{avg_mood:.1f}/5. {direction}"
                ),
                severity=round(severity, 4),
            )
        )

    return results


def summarize_visuals(photos: Sequence[PhotoRecord], videos: Sequence[VideoRecord]) -> VisualSummary:
    tones: Counter = Counter()
    tags: List[str] = []
    people: List[int] = []

    for photo in photos:
        if photo.tone:
            tones[photo.tone] += 1
        for tag in photo.tags or []:
            if tag not in tags:
                tags.append(tag)
        if photo.people_count is not None:
            people.append(photo.people_count)

    # Ties keep the first tone seen.
    dominant = "neutral"
    best = 0
    for tone, count in tones.items():
        if count > best:
            dominant, best = tone, count

    return VisualSummary(
        photo_count=len(photos),
        video_count=len(videos),
        dominant_mood=dominant,
        avg_people_count=round(mean(people), 1) if people else 0.0,
        unique_tags=tags,
        mood_distribution=dict(tones),
    )


def visual_narrative(first: VisualSummary, second: VisualSummary) -> Optional[str]:
    if first.photo_count == 0 and second.photo_count == 0:
        return None

    parts: List[str] = []
    if first.photo_count != second.photo_count:
        direction = "more" if second.photo_count > first.photo_count else "fewer"
        parts.append(
            f"You captured {direction} visual memories ({first.photo_count} -> {second.photo_count})."
        )
    if first.dominant_mood != second.dominant_mood:
        parts.append(f"The visual mood shifted from {first.dominant_mood} to {second.dominant_mood}.")
    return " ".join(parts) or None
