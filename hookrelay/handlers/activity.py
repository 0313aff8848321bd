"""
Built-in handlers that log repository activity.

Commits are sorted into features, bug fixes and refactors by their
conventional-commit prefix, and branches into feature and hotfix branches by
name, so the log reads as a development timeline.
"""

import re
from collections import Counter
from enum import Enum

import structlog

from hookrelay.events import EventType, MergeEvent, PullRequestEvent, PushEvent
from hookrelay.services.registry import HandlerRegistry

logger = structlog.get_logger(__name__)

CONVENTIONAL_PREFIX = re.compile(r"^\s*(?P<type>[a-zA-Z]+)(\([^)]*\))?!?:")


class ChangeKind(Enum):
    FEATURE = "feature"
    BUG_FIX = "bug_fix"
    REFACTOR = "refactor"
    OTHER = "other"


class BranchKind(Enum):
    FEATURE = "feature"
    HOTFIX = "hotfix"
    MAIN = "main"
    OTHER = "other"


CHANGE_PREFIXES = {
    "feat": ChangeKind.FEATURE,
    "feature": ChangeKind.FEATURE,
    "fix": ChangeKind.BUG_FIX,
    "bugfix": ChangeKind.BUG_FIX,
    "hotfix": ChangeKind.BUG_FIX,
    "refactor": ChangeKind.REFACTOR,
}


def classify_change(message: str) -> ChangeKind:
    match = CONVENTIONAL_PREFIX.match(message)
    if not match:
        return ChangeKind.OTHER
    return CHANGE_PREFIXES.get(match.group("type").lower(), ChangeKind.OTHER)


def branch_kind(ref: str) -> BranchKind:
    branch = ref.removeprefix("refs/heads/")
    if branch in ("main", "master"):
        return BranchKind.MAIN
    if branch.startswith("feature/"):
        return BranchKind.FEATURE
    if branch.startswith(("hotfix/", "bugfix/")):
        return BranchKind.HOTFIX
    return BranchKind.OTHER


async def log_push(event: PushEvent) -> None:
    if event.deleted:
        logger.info(
            "Branch deleted",
            repository=event.repository,
            ref=event.ref,
            pusher=event.pusher,
        )
        return

    if event.created:
        logger.info(
            "Branch created",
            repository=event.repository,
            ref=event.ref,
            branch_kind=branch_kind(event.ref).value,
            pusher=event.pusher,
        )

    if not event.commits:
        return

    changes = Counter(classify_change(commit.message).value for commit in event.commits)
    logger.info(
        "Commits pushed",
        repository=event.repository,
        ref=event.ref,
        pusher=event.pusher,
        commits=len(event.commits),
        changes=dict(changes),
    )


async def log_pull_request(event: PullRequestEvent) -> None:
    message = (
        "Pull request opened" if event.action == "opened" else "Pull request updated"
    )
    logger.info(
        message,
        repository=event.repository,
        number=event.number,
        title=event.title,
        head=event.head.ref,
        base=event.base.ref,
        branch_kind=branch_kind(event.head.ref).value,
        sender=event.sender,
    )


async def log_merge(event: MergeEvent) -> None:
    logger.info(
        "Pull request merged",
        repository=event.repository,
        number=event.number,
        head=event.head.ref,
        base=event.base.ref,
        merged_by=event.merged_by,
        merged_at=event.merged_at.isoformat() if event.merged_at else None,
    )


def register_activity_handlers(registry: HandlerRegistry) -> None:
    registry.register(EventType.PUSH, log_push, name="activity.push")
    registry.register(EventType.PULL_REQUEST, log_pull_request, name="activity.pull_request")
    registry.register(EventType.MERGE, log_merge, name="activity.merge")
