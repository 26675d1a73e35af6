"""Reminder trigger evaluation and delivery.

Two scheduler-driven passes share this module:

* the time-window pass matches the clock against the user's fixed reminder
  time or, in adaptive mode, the start time of their latest session;
* the dynamic pass looks for a missed day late in the evening and for
  repositories that went quiet two weeks to three months ago.

Break reminders are sent on demand. Every collaborator failure during
evaluation fails open: the user is assumed to have been active, so a flaky
GitHub or database never produces a spurious nudge.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable

from sqlalchemy.orm import Session

from ai.motivation import generate_motivation
from db.models import User
from services.errors import InvalidTokenError, NotFoundError
from services.github_service import GitHubClient, parse_github_time
from services.log_service import has_log_for_day, load_entries
from services.message_templates import (
    BREAK_REMINDER_BODY,
    BREAK_REMINDER_TITLE,
    MISSED_ACTIVITY_TITLE,
    PROJECT_REVIVAL_TITLE,
    pick_title,
)
from services.service_context import ServiceContext
from services.stats_service import compute_stats
from services.token_registry import remove_token
from services.user_state import UserActivityState, activity_state_from_row
from utils.date_values import normalize_day_key
from utils.datetime_utils import day_key, parse_clock_time, to_local, utcnow

logger = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    NONE = "none"
    ADAPTIVE_MATCH = "adaptive_match"
    FIXED_MATCH = "fixed_match"
    MISSED_ACTIVITY = "missed_activity"
    PROJECT_REVIVAL = "project_revival"
    BREAK_REMINDER = "break_reminder"


@dataclass
class NotificationDecision:
    trigger: TriggerKind
    payload: dict = field(default_factory=dict)

    @property
    def should_notify(self) -> bool:
        return self.trigger is not TriggerKind.NONE


def no_trigger(reason: str | None = None) -> NotificationDecision:
    return NotificationDecision(TriggerKind.NONE, {"reason": reason} if reason else {})


def is_eligible(state: UserActivityState) -> bool:
    return bool(state.push_token) and state.onboarding_completed and state.preferences.notifications


# ---------------------------------------------------------------------------
# Time-window pass
# ---------------------------------------------------------------------------

def matches_window(local: datetime, target: tuple[int, int], window_minutes: int) -> bool:
    hour, minute = target
    return local.hour == hour and abs(local.minute - minute) <= window_minutes


def evaluate_time_window(
    state: UserActivityState,
    now: datetime,
    window_minutes: int = 5,
) -> NotificationDecision:
    prefs = state.preferences
    if not prefs.notifications:
        return no_trigger("notifications disabled")

    local = to_local(now, state.timezone)
    if prefs.reminderMode == "fixed":
        if not prefs.fixedTime:
            return no_trigger("fixed mode without a fixed time")
        if matches_window(local, parse_clock_time(prefs.fixedTime), window_minutes):
            return NotificationDecision(
                TriggerKind.FIXED_MATCH,
                {"reminderMode": "fixed", "reminderTime": prefs.fixedTime},
            )
        return no_trigger()

    if not state.last_start_time:
        return no_trigger("no start time recorded yet")
    if matches_window(local, parse_clock_time(state.last_start_time), window_minutes):
        return NotificationDecision(
            TriggerKind.ADAPTIVE_MATCH,
            {"reminderMode": "adaptive", "reminderTime": state.last_start_time},
        )
    return no_trigger()


# ---------------------------------------------------------------------------
# Dynamic pass
# ---------------------------------------------------------------------------

async def has_commits_today(github: GitHubClient | None, state: UserActivityState, now: datetime) -> bool:
    """True when GitHub shows activity today; unlinked accounts and failures count as active."""
    if github is None or not state.github_username:
        return True
    try:
        summary = await github.get_activity_summary(state.github_username, state.timezone, now=now)
    except Exception as e:
        logger.warning(f"Error checking GitHub activity for {state.github_username}: {e}")
        return True
    return int(summary.get("today_events") or 0) > 0


def has_logs_today(db: Session, state: UserActivityState, now: datetime) -> bool:
    today = day_key(to_local(now, state.timezone).date())
    try:
        return has_log_for_day(db, state.user_id, today)
    except Exception as e:
        logger.warning(f"Error checking logs for {state.user_id}: {e}")
        return True


async def find_inactive_project(
    github: GitHubClient | None,
    state: UserActivityState,
    now: datetime,
    min_days: int = 14,
    max_days: int = 90,
    repo_limit: int = 5,
) -> dict | None:
    """First recently-updated repo whose last push is between ``min_days`` and ``max_days`` old."""
    if github is None or not state.github_username:
        return None
    try:
        repos = await github.get_repos(state.github_username, repo_limit)
    except Exception as e:
        logger.warning(f"Error listing repositories for {state.github_username}: {e}")
        return None

    newest_allowed = now - timedelta(days=min_days)
    oldest_allowed = now - timedelta(days=max_days)
    for repo in repos:
        last_push = parse_github_time(repo.get("updated_at"))
        if last_push is None:
            continue
        if oldest_allowed < last_push < newest_allowed:
            return {"projectName": repo.get("name"), "lastPushed": repo.get("updated_at")}
    return None


async def evaluate_dynamic_triggers(
    state: UserActivityState,
    now: datetime,
    *,
    github: GitHubClient | None,
    logs_today: Callable[[], bool],
    missed_activity_hour: int = 20,
    revival_min_days: int = 14,
    revival_max_days: int = 90,
    revival_repo_limit: int = 5,
) -> NotificationDecision:
    if not state.preferences.notifications:
        return no_trigger("notifications disabled")

    local = to_local(now, state.timezone)
    if local.hour >= missed_activity_hour:
        committed = await has_commits_today(github, state, now)
        if not committed and not logs_today():
            return NotificationDecision(TriggerKind.MISSED_ACTIVITY, {})

    project = await find_inactive_project(
        github,
        state,
        now,
        min_days=revival_min_days,
        max_days=revival_max_days,
        repo_limit=revival_repo_limit,
    )
    if project:
        return NotificationDecision(TriggerKind.PROJECT_REVIVAL, project)
    return no_trigger()


# ---------------------------------------------------------------------------
# Break reminders (on demand)
# ---------------------------------------------------------------------------

def evaluate_break_reminder(state: UserActivityState, inactive_minutes: int) -> NotificationDecision:
    prefs = state.preferences
    if not prefs.breakDetection:
        return no_trigger("Break detection disabled")
    if prefs.commitPattern != "frequent":
        return no_trigger("User uses end-only commit pattern")
    return NotificationDecision(TriggerKind.BREAK_REMINDER, {"inactiveMinutes": int(inactive_minutes)})


# ---------------------------------------------------------------------------
# Composition and delivery
# ---------------------------------------------------------------------------

def _motivation_stats(db: Session, state: UserActivityState, now: datetime) -> dict:
    entries = load_entries(db, state.user_id)
    snapshot = compute_stats(entries, now=now, tz_name=state.timezone)
    today = to_local(now, state.timezone).date()
    logged_days = {normalize_day_key(e.date, state.timezone) for e in entries if e.date is not None}
    days_active = sum(1 for offset in range(7) if day_key(today - timedelta(days=offset)) in logged_days)
    return {
        "streak": snapshot.currentStreak,
        "daysActive": days_active,
        "lastActive": state.updated_at.isoformat() if state.updated_at else None,
        "lastStartTime": state.last_start_time,
    }


async def compose_notification(
    ctx: ServiceContext,
    db: Session,
    state: UserActivityState,
    decision: NotificationDecision,
    now: datetime,
    seed: int | None = None,
) -> tuple[dict, dict]:
    """Return ``(notification, data)`` for a decision that should notify."""
    trigger = decision.trigger
    if trigger is TriggerKind.BREAK_REMINDER:
        minutes = decision.payload.get("inactiveMinutes")
        notification = {
            "title": BREAK_REMINDER_TITLE,
            "body": BREAK_REMINDER_BODY.format(minutes=minutes),
        }
        return notification, {"type": trigger.value, "inactiveMinutes": minutes}

    stats = _motivation_stats(db, state, now)
    if trigger is TriggerKind.PROJECT_REVIVAL:
        stats["projectName"] = decision.payload.get("projectName")
        title = PROJECT_REVIVAL_TITLE.format(project=decision.payload.get("projectName"))
        data = {"type": trigger.value, **decision.payload}
    elif trigger is TriggerKind.MISSED_ACTIVITY:
        title = MISSED_ACTIVITY_TITLE
        data = {"type": trigger.value}
    else:
        github = ctx.github_for(state)
        if github is not None:
            stats["commits"] = len(await github.get_recent_commits(state.github_username, days=7))
        title = pick_title(state.user_goal, seed)
        data = {
            "type": "consistency_reminder",
            "trigger": trigger.value,
            "lastStartTime": state.last_start_time or "",
            "userGoal": state.user_goal or "",
            "reminderMode": state.preferences.reminderMode,
        }

    body = await generate_motivation(ctx.ai, stats)
    return {"title": title, "body": body}, data


async def deliver(
    ctx: ServiceContext,
    db: Session,
    state: UserActivityState,
    decision: NotificationDecision,
    now: datetime | None = None,
    seed: int | None = None,
) -> dict:
    now = now or utcnow()
    notification, data = await compose_notification(ctx, db, state, decision, now, seed)
    result = await ctx.push.send(state.push_token, notification, data)
    try:
        result.raise_for_invalid_token()
    except InvalidTokenError:
        logger.info(f"Push token for {state.user_id} rejected by provider; clearing it")
        remove_token(db, state.user_id)
    return {"userId": state.user_id, "trigger": decision.trigger.value, **result.to_dict()}


# ---------------------------------------------------------------------------
# Sweeps
# ---------------------------------------------------------------------------

Evaluator = Callable[[Session, UserActivityState, datetime], Awaitable[NotificationDecision]]


def candidate_user_ids(db: Session) -> list[str]:
    rows = (
        db.query(User.id)
        .filter(
            User.push_token.isnot(None),
            User.push_token != "",
            User.onboarding_completed.is_(True),
        )
        .all()
    )
    return [row.id for row in rows]


async def _evaluate_one(
    ctx: ServiceContext,
    semaphore: asyncio.Semaphore,
    user_id: str,
    evaluate: Evaluator,
    now: datetime,
) -> dict | None:
    async with semaphore:
        db = ctx.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                return None
            state = activity_state_from_row(user)
            if not is_eligible(state):
                return None
            decision = await evaluate(db, state, now)
            if not decision.should_notify:
                return None
            logger.info(f"Triggering {decision.trigger.value} for user {user_id}")
            return await deliver(ctx, db, state, decision, now)
        except Exception as e:
            logger.error(f"Reminder evaluation failed for user {user_id}: {e}")
            return {"userId": user_id, "success": False, "error": str(e)}
        finally:
            db.close()


async def _sweep(ctx: ServiceContext, evaluate: Evaluator, now: datetime) -> tuple[int, list[dict]]:
    db = ctx.session_factory()
    try:
        user_ids = candidate_user_ids(db)
    finally:
        db.close()

    semaphore = asyncio.Semaphore(max(int(ctx.settings.REMINDER_SWEEP_CONCURRENCY), 1))
    outcomes = await asyncio.gather(
        *(_evaluate_one(ctx, semaphore, user_id, evaluate, now) for user_id in user_ids)
    )
    return len(user_ids), [outcome for outcome in outcomes if outcome is not None]


def _summary(now: datetime, results: list[dict]) -> dict:
    return {
        "success": True,
        "checkedAt": to_local(now).strftime("%H:%M"),
        "notificationsSent": sum(1 for r in results if r.get("success")),
        "results": results,
    }


async def run_reminder_sweep(ctx: ServiceContext, now: datetime | None = None) -> dict:
    """Time-window pass over every eligible user; never raises."""
    try:
        now = now or utcnow()
        logger.info(f"Checking reminders for time: {to_local(now).strftime('%H:%M')}")
        window = int(ctx.settings.REMINDER_WINDOW_MINUTES)

        async def _evaluate(_db: Session, state: UserActivityState, at: datetime) -> NotificationDecision:
            return evaluate_time_window(state, at, window)

        _, results = await _sweep(ctx, _evaluate, now)
        return _summary(now, results)
    except Exception as e:
        logger.error(f"Error checking reminders: {e}")
        return {"success": False, "error": str(e)}


async def run_dynamic_sweep(ctx: ServiceContext, now: datetime | None = None) -> dict:
    """Missed-activity and project-revival pass; never raises."""
    try:
        now = now or utcnow()
        cfg = ctx.settings

        async def _evaluate(db: Session, state: UserActivityState, at: datetime) -> NotificationDecision:
            return await evaluate_dynamic_triggers(
                state,
                at,
                github=ctx.github_for(state),
                logs_today=lambda: has_logs_today(db, state, at),
                missed_activity_hour=cfg.MISSED_ACTIVITY_HOUR_LOCAL,
                revival_min_days=cfg.PROJECT_REVIVAL_MIN_DAYS,
                revival_max_days=cfg.PROJECT_REVIVAL_MAX_DAYS,
                revival_repo_limit=cfg.PROJECT_REVIVAL_REPO_LIMIT,
            )

        checked, results = await _sweep(ctx, _evaluate, now)
        logger.info(f"Dynamic notification check covered {checked} users")
        return {**_summary(now, results), "usersChecked": checked}
    except Exception as e:
        logger.error(f"Error in dynamic notification check: {e}")
        return {"success": False, "error": str(e)}


# ---------------------------------------------------------------------------
# Single-user sends
# ---------------------------------------------------------------------------

def _load_state(db: Session, user_id: str) -> UserActivityState:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return activity_state_from_row(user)


async def send_consistency_reminder(ctx: ServiceContext, db: Session, user_id: str, seed: int | None = None) -> dict:
    """Send the regular reminder now, ignoring the time window (used for test sends)."""
    state = _load_state(db, user_id)
    if not state.push_token:
        return {"success": False, "error": "No push token registered"}
    trigger = TriggerKind.FIXED_MATCH if state.preferences.reminderMode == "fixed" else TriggerKind.ADAPTIVE_MATCH
    return await deliver(ctx, db, state, NotificationDecision(trigger, {}), seed=seed)


async def send_break_reminder(ctx: ServiceContext, db: Session, user_id: str, inactive_minutes: int) -> dict:
    state = _load_state(db, user_id)
    decision = evaluate_break_reminder(state, inactive_minutes)
    if not decision.should_notify:
        return {"success": False, "error": decision.payload.get("reason")}
    if not state.push_token:
        return {"success": False, "error": "No push token registered"}
    return await deliver(ctx, db, state, decision)
