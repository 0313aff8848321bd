"""Typed events produced by the classifier and consumed by handlers."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar


class EventType(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    MERGE = "merge"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GitRef:
    ref: str
    sha: str | None = None


@dataclass(frozen=True)
class Commit:
    id: str
    message: str = ""
    author: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class PushEvent:
    kind: ClassVar[EventType] = EventType.PUSH

    ref: str
    pusher: str
    commits: tuple[Commit, ...] = ()
    head_commit: Commit | None = None
    repository: str | None = None
    before: str | None = None
    after: str | None = None
    created: bool = False
    deleted: bool = False

    @property
    def branch(self) -> str | None:
        if self.ref.startswith("refs/heads/"):
            return self.ref.removeprefix("refs/heads/")
        return None


@dataclass(frozen=True)
class PullRequestEvent:
    kind: ClassVar[EventType] = EventType.PULL_REQUEST

    number: int
    action: str
    head: GitRef
    base: GitRef
    title: str = ""
    repository: str | None = None
    sender: str | None = None


@dataclass(frozen=True)
class MergeEvent:
    kind: ClassVar[EventType] = EventType.MERGE

    number: int
    head: GitRef
    base: GitRef
    merged_by: str | None = None
    merged_at: datetime | None = None
    repository: str | None = None


@dataclass(frozen=True)
class UnknownEvent:
    kind: ClassVar[EventType] = EventType.UNKNOWN

    raw_header: str | None
    raw_payload: Any = field(default=None, compare=False)


Event = PushEvent | PullRequestEvent | MergeEvent | UnknownEvent
