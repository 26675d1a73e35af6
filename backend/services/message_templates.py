from __future__ import annotations

import random

DEFAULT_GOAL = "default"

GOAL_TITLES: dict[str, tuple[str, ...]] = {
    "Learning new tech stack": (
        "🚀 Time to level up your skills!",
        "📚 Every day of learning compounds into expertise!",
        "💡 New technology mastery awaits!",
    ),
    "Working on side projects": (
        "🛠️ Your side project is waiting for you!",
        "💪 Ship something awesome today!",
        "🎯 One commit closer to launch!",
    ),
    "Preparing for placements": (
        "📝 Consistency beats cramming!",
        "🎓 Future employers notice dedication!",
        "💼 Your portfolio grows with each commit!",
    ),
    "Freelance work": (
        "💰 Your clients value your dedication!",
        "⚡ Build your reputation with consistency!",
        "🌟 Great freelancers show up daily!",
    ),
    "Personal portfolio": (
        "🖼️ Your portfolio is your best resume!",
        "✨ Showcase your growth every day!",
        "🎨 Each project tells your story!",
    ),
    DEFAULT_GOAL: (
        "🔥 Time to Code!",
        "💻 Keep the streak alive!",
        "🚀 Consistency is your superpower!",
    ),
}

MISSED_ACTIVITY_TITLE = "🔥 Don't break your streak!"
PROJECT_REVIVAL_TITLE = "🚀 Remember {project}?"
BREAK_REMINDER_TITLE = "☕ Taking a break?"
BREAK_REMINDER_BODY = (
    "No commits detected for {minutes} minutes. "
    "Remember to mark your break if you're stepping away!"
)


def titles_for_goal(goal: str | None) -> tuple[str, ...]:
    return GOAL_TITLES.get(goal or "", GOAL_TITLES[DEFAULT_GOAL])


def pick_title(goal: str | None, seed: int | None = None) -> str:
    """Pick a motivational title for the user's goal.

    The same ``seed`` always yields the same title; ``None`` draws fresh.
    """
    options = titles_for_goal(goal)
    rng = random.Random(seed) if seed is not None else random
    return rng.choice(options)
