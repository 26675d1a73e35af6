import logging

from ai.providers.base import AIProvider

logger = logging.getLogger(__name__)

FALLBACK_MOTIVATION = (
    "Keep up the great work! Every day of consistent coding brings you closer to your goals. 🚀"
)

SYSTEM_PROMPT = """You are DevTrack AI Assistant, a coding mentor inside a developer consistency tracker.
Motivate and encourage consistent learning habits. Be concise, warm and specific.
Never use markdown in notification text."""

MOTIVATION_PROMPT = """Based on this developer's recent activity, generate a short (2-3 sentences) motivational message:
- Days active this week: {days_active}
- Commits this week: {commits}
- Current streak: {streak} days
- Last active: {last_active}
{project_line}
Make it personal, encouraging, and specific to their progress. Keep it under 100 words."""


def build_motivation_prompt(stats: dict) -> str:
    project = stats.get("projectName")
    project_line = f"- Project waiting for them: {project}\n" if project else ""
    return MOTIVATION_PROMPT.format(
        days_active=stats.get("daysActive") or 0,
        commits=stats.get("commits") or 0,
        streak=stats.get("streak") or 0,
        last_active=stats.get("lastActive") or "Unknown",
        project_line=project_line,
    )


async def generate_motivation(provider: AIProvider | None, stats: dict) -> str:
    """Return an AI-written notification body, or the static fallback on any failure."""
    if provider is None:
        return FALLBACK_MOTIVATION
    try:
        result = await provider.chat(
            messages=[{"role": "user", "content": build_motivation_prompt(stats)}],
            system=SYSTEM_PROMPT,
        )
    except Exception as e:
        logger.warning(f"Motivation generation failed, using fallback text: {e}")
        return FALLBACK_MOTIVATION

    text = str((result or {}).get("content") or "").strip()
    return text or FALLBACK_MOTIVATION
