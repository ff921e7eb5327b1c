# ace/assistant_context.py
import logging
from typing import List, Optional, Sequence

from .models import MemoryEntry, ProductivityInsights

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 6000

ASSISTANT_PERSONA = (
    "You are Ace, a personal productivity manager and digital life coordinator. "
    "Proactively manage the user's digital life and optimize productivity, acting as a "
    "manager and guide rather than an assistant."
)

PRIMARY_DIRECTIVE = [
    "Monitor and analyze all digital activities",
    "Provide real-time guidance and course corrections",
    "Identify patterns and suggest optimizations",
    "Guide focus and attention to highest-priority tasks",
    "Prevent digital distractions and time waste",
]

INTERACTION_STYLE = [
    "Take initiative in guiding the user",
    "Provide direct, actionable feedback",
    "Interrupt unproductive patterns",
    "Maintain context across all interactions",
    "Be assertive but adaptable",
]


def format_context_lines(memories: Sequence[MemoryEntry], max_chars: int = MAX_CONTEXT_CHARS) -> List[str]:
    """
    One "- content" line per memory, in the given (ranked) order,
    stopping before the total character budget is exceeded.
    """
    lines = []
    total_chars = 0

    for memory in memories:
        text = memory.content.strip()
        if not text:
            continue

        line = f"- {text}"
        if total_chars + len(line) > max_chars:
            logger.debug(f"Context budget reached after {len(lines)} memories")
            break

        lines.append(line)
        total_chars += len(line)

    return lines


def format_context(memories: Sequence[MemoryEntry]) -> str:
    lines = format_context_lines(memories)
    if not lines:
        return ""
    return "Recent context:\n" + "\n".join(lines)


def build_system_instruction(memories: Sequence[MemoryEntry],
                             insights: Optional[ProductivityInsights] = None) -> str:
    """Assistant instruction text with the relevant memories spliced in."""
    parts = [ASSISTANT_PERSONA]

    parts.append("Your role is to:\n" + "\n".join(f"{i}. {d}" for i, d in enumerate(PRIMARY_DIRECTIVE, 1)))
    parts.append("Interaction style:\n" + "\n".join(f"- {s}" for s in INTERACTION_STYLE))

    if insights is not None and insights.current_activity.name != "No activity":
        parts.append(
            f"Current activity: {insights.current_activity.name} for {insights.time_spent}"
            f" (recommended next: {insights.recommended_activity})"
        )

    context = format_context(memories)
    if context:
        parts.append(context)

    return "\n\n".join(parts)
