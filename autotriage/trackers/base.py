"""Abstract base class for issue trackers."""

from abc import ABC, abstractmethod

from autotriage.models import IssueState


class IssueTracker(ABC):
    repository: str | None = None

    @abstractmethod
    async def get_issue(self, number: int) -> IssueState: ...

    @abstractmethod
    async def repo_has_label(self, name: str) -> bool: ...

    @abstractmethod
    async def create_label(self, name: str, color: str, description: str = "") -> None: ...

    @abstractmethod
    async def add_label(self, number: int, name: str) -> None: ...

    @abstractmethod
    async def add_assignee(self, number: int, login: str) -> None: ...

    @abstractmethod
    async def post_comment(self, number: int, body: str) -> None: ...

    @abstractmethod
    async def get_assigner(self, number: int, login: str) -> str | None:
        """Return who assigned login to the issue, or None if it never happened."""

    @abstractmethod
    async def read_config(self, path: str) -> str: ...
