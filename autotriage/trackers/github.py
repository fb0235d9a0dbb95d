"""GitHub REST API v3 tracker."""

import base64
import logging
import subprocess
from urllib.parse import quote

import httpx

from autotriage.models import IssueState
from autotriage.settings import TriageSettings
from autotriage.trackers.base import IssueTracker

log = logging.getLogger(__name__)


class GitHubTracker(IssueTracker):
    """Async GitHub client scoped to one repository.

    Use as ``async with GitHubTracker(settings) as tracker`` so the underlying
    connection pool is closed when the run ends.
    """

    def __init__(self, settings: TriageSettings, client: httpx.AsyncClient | None = None) -> None:
        if not settings.github_repo:
            raise RuntimeError("No repository configured. Set AUTOTRIAGE_GITHUB_REPO.")
        self.repository = settings.github_repo
        self._token = self._resolve_token(settings)
        self._base = f"{settings.api_url.rstrip('/')}/repos/{self.repository}"
        self._client = client or httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=30,
            # transferred issues answer with a redirect to their new number
            follow_redirects=True,
        )

    async def __aenter__(self) -> "GitHubTracker":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self._client.aclose()

    def _resolve_token(self, settings: TriageSettings) -> str:
        if settings.github_auth == "gh-cli":
            result = subprocess.run(
                ["gh", "auth", "token"],
                capture_output=True,
                text=True,
            )
            if result.returncode != 0:
                raise RuntimeError("gh auth token failed. Run: gh auth login")
            return result.stdout.strip()
        if settings.github_token:
            return settings.github_token.get_secret_value()
        raise RuntimeError("No GitHub credentials. Set AUTOTRIAGE_GITHUB_TOKEN.")

    def _check(self, response: httpx.Response) -> httpx.Response:
        if response.status_code == 401:
            raise RuntimeError("GitHub API returned 401. Update the token for the active profile.")
        response.raise_for_status()
        return response

    async def _get(self, path: str, params: dict | None = None) -> dict | list:
        response = await self._client.get(f"{self._base}{path}", params=params or {})
        return self._check(response).json()

    async def _post(self, path: str, body: dict) -> dict:
        response = await self._client.post(f"{self._base}{path}", json=body)
        return self._check(response).json()

    async def get_issue(self, number: int) -> IssueState:
        node = await self._get(f"/issues/{number}")
        assignee = node.get("assignee")  # type: ignore[union-attr]
        return IssueState(
            number=node["number"],  # type: ignore[index]
            assignee=assignee["login"] if assignee else None,
            labels=frozenset(label["name"] for label in node.get("labels", [])),  # type: ignore[union-attr]
        )

    async def repo_has_label(self, name: str) -> bool:
        response = await self._client.get(f"{self._base}/labels/{quote(name, safe='')}")
        if response.status_code == 404:
            return False
        self._check(response)
        return True

    async def create_label(self, name: str, color: str, description: str = "") -> None:
        log.debug("creating label %s (#%s)", name, color)
        await self._post("/labels", {"name": name, "color": color, "description": description})

    async def add_label(self, number: int, name: str) -> None:
        log.debug("adding label %s to #%d", name, number)
        await self._post(f"/issues/{number}/labels", {"labels": [name]})

    async def add_assignee(self, number: int, login: str) -> None:
        log.debug("adding assignee %s to #%d", login, number)
        await self._post(f"/issues/{number}/assignees", {"assignees": [login]})

    async def post_comment(self, number: int, body: str) -> None:
        await self._post(f"/issues/{number}/comments", {"body": body})

    async def get_assigner(self, number: int, login: str) -> str | None:
        url: str | None = f"{self._base}/issues/{number}/events"
        params: dict | None = {"per_page": "100"}
        while url:
            response = self._check(await self._client.get(url, params=params))
            for event in response.json():
                assignee = event.get("assignee") or {}
                if event.get("event") == "assigned" and assignee.get("login") == login:
                    actor = event.get("actor") or {}
                    return actor.get("login") or "ghost"
            # the next link already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None
        return None

    async def read_config(self, path: str) -> str:
        node = await self._get(f"/contents/{quote(path.lstrip('/'))}")
        if not isinstance(node, dict) or node.get("type") != "file":
            raise RuntimeError(f"{path} is not a file in {self.repository}")
        return base64.b64decode(node["content"]).decode("utf-8")
