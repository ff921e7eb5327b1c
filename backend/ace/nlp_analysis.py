import re
from typing import Dict, List

from .models import ActivityType

# ---------------------
# Key Concept Extraction
# ---------------------

STOP_WORDS = {"the", "and", "or", "but", "in", "on", "at", "to"}
MAX_KEY_CONCEPTS = 5


def extract_key_concepts(text: str, top_n: int = MAX_KEY_CONCEPTS) -> List[str]:
    """
    Bag-of-words summary: lower-cased tokens longer than 3 characters,
    stop words removed, de-duplicated in order of appearance, at most top_n.
    """
    if not text or not text.strip():
        return []

    concepts = []
    for word in re.split(r"\W+", text.lower()):
        if len(word) <= 3 or word in STOP_WORDS or word in concepts:
            continue
        concepts.append(word)
        if len(concepts) == top_n:
            break
    return concepts

# ---------------------
# Activity Type Inference
# ---------------------

ACTIVITY_KEYWORDS: Dict[ActivityType, List[str]] = {
    ActivityType.DEVELOPMENT: ["code", "programming", "debug", "git", "dev"],
    ActivityType.LEARNING: ["learn", "study", "course", "tutorial", "documentation"],
    ActivityType.COMMUNICATION: ["email", "chat", "meeting", "slack", "teams"],
    ActivityType.ENTERTAINMENT: ["youtube", "social", "game", "video", "browse"],
    ActivityType.WORK: ["project", "task", "deadline", "report", "review"],
}


def infer_activity_type(concepts: List[str]) -> ActivityType:
    """
    Picks the activity type whose keywords occur in the most concepts.
    No match, or a tie for the best count, falls back to work.
    """
    counts = {
        activity_type: sum(1 for concept in concepts if any(kw in concept for kw in keywords))
        for activity_type, keywords in ACTIVITY_KEYWORDS.items()
    }
    best = max(counts.values(), default=0)
    if best == 0:
        return ActivityType.WORK

    leaders = [activity_type for activity_type, count in counts.items() if count == best]
    if len(leaders) > 1:
        return ActivityType.WORK
    return leaders[0]

# ---------------------
# Emotional Valence
# ---------------------

POSITIVE_WORDS = ["success", "achieve", "productive", "focus", "complete"]
NEGATIVE_WORDS = ["distract", "procrastinate", "waste", "delay", "fail"]


def estimate_emotional_valence(text: str) -> float:
    """
    (positive - negative) / (positive + negative + 1), always inside (-1, 1).
    Counts how many listed keywords appear in the text, not how often.
    """
    lower = (text or "").lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in lower)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lower)
    return (positive - negative) / (positive + negative + 1)
