from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx

from services.errors import CollaboratorUnavailableError
from utils.datetime_utils import to_local

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
MAX_RECENT_COMMITS = 50


def parse_github_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class GitHubClient:
    """Thin async wrapper over the GitHub REST endpoints the reminders need."""

    def __init__(self, token: str, base_url: str = GITHUB_API_URL, timeout_seconds: float = 10):
        if not token:
            raise ValueError("GitHub token not provided")
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    async def _get(self, path: str, params: dict | None = None):
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                resp = await client.get(
                    f"{self.base_url}{path}",
                    params=params,
                    headers={
                        "Authorization": f"Bearer {self.token}",
                        "Accept": "application/vnd.github+json",
                        "X-GitHub-Api-Version": "2022-11-28",
                    },
                )
        except httpx.HTTPError as exc:
            raise CollaboratorUnavailableError("github", f"request failed: {exc}") from exc
        if resp.status_code != 200:
            raise CollaboratorUnavailableError("github", f"GitHub API error {resp.status_code}: {resp.text}")
        try:
            return resp.json()
        except ValueError as exc:
            raise CollaboratorUnavailableError("github", "invalid JSON response") from exc

    async def get_repos(self, username: str, per_page: int = 10) -> list[dict]:
        data = await self._get(
            f"/users/{username}/repos",
            params={"sort": "updated", "per_page": per_page},
        )
        return [
            {
                "name": repo.get("name"),
                "full_name": repo.get("full_name"),
                "description": repo.get("description"),
                "language": repo.get("language"),
                "stars": repo.get("stargazers_count", 0),
                "forks": repo.get("forks_count", 0),
                "updated_at": repo.get("updated_at"),
                "url": repo.get("html_url"),
                "is_private": bool(repo.get("private")),
            }
            for repo in data or []
        ]

    async def _public_events(self, username: str) -> list[dict]:
        return await self._get(f"/users/{username}/events/public", params={"per_page": 100}) or []

    async def get_activity_summary(self, username: str, tz_name: str | None = None, now: datetime | None = None) -> dict:
        events = await self._public_events(username)
        today = to_local(now or datetime.now(timezone.utc), tz_name).date()

        today_events = push_events = pr_events = issue_events = 0
        repos_worked_on: dict[str, None] = {}
        for event in events:
            created = parse_github_time(event.get("created_at"))
            if created and to_local(created, tz_name).date() == today:
                today_events += 1

            repo_name = (event.get("repo") or {}).get("name")
            if repo_name:
                repos_worked_on[repo_name] = None

            kind = event.get("type")
            if kind == "PushEvent":
                push_events += 1
            elif kind == "PullRequestEvent":
                pr_events += 1
            elif kind == "IssuesEvent":
                issue_events += 1

        return {
            "total_events": len(events),
            "today_events": today_events,
            "push_events": push_events,
            "pr_events": pr_events,
            "issue_events": issue_events,
            "repos_worked_on": list(repos_worked_on),
            "repos_count": len(repos_worked_on),
        }

    async def get_recent_commits(self, username: str, days: int = 7) -> list[dict]:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        try:
            events = await self._public_events(username)
        except CollaboratorUnavailableError as e:
            logger.warning(f"Error fetching commits for {username}: {e}")
            return []

        commits = []
        for event in events:
            if event.get("type") != "PushEvent":
                continue
            created = parse_github_time(event.get("created_at"))
            if created is None or created < since:
                continue
            repo_name = (event.get("repo") or {}).get("name", "")
            for commit in (event.get("payload") or {}).get("commits") or []:
                sha = str(commit.get("sha") or "")
                commits.append({
                    "sha": sha[:7],
                    "message": str(commit.get("message") or "").split("\n")[0],
                    "repo": repo_name,
                    "date": event.get("created_at"),
                    "url": f"https://github.com/{repo_name}/commit/{sha}",
                })
        return commits[:MAX_RECENT_COMMITS]
