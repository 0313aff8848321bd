from datetime import datetime
from typing import Any

from hookrelay.events import (
    Commit,
    Event,
    GitRef,
    MergeEvent,
    PullRequestEvent,
    PushEvent,
    UnknownEvent,
)
from hookrelay.verifier import VerifiedPayload

PULL_REQUEST_ACTIONS = ("opened", "synchronize")


class _Unclassifiable(Exception):
    pass


def _require_str(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise _Unclassifiable
    return value


def _require_int(value: Any) -> int:
    # bool is an int subclass but never a valid PR number
    if not isinstance(value, int) or isinstance(value, bool):
        raise _Unclassifiable
    return value


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _repository(payload: dict[str, Any]) -> str | None:
    return _optional_str(_mapping(payload.get("repository")).get("full_name"))


def _commit(data: Any) -> Commit:
    data = _mapping(data)
    author = _mapping(data.get("author"))
    return Commit(
        id=_require_str(data.get("id")),
        message=_optional_str(data.get("message")) or "",
        author=_optional_str(author.get("username")) or _optional_str(author.get("name")),
        url=_optional_str(data.get("url")),
    )


def _git_ref(data: Any) -> GitRef:
    data = _mapping(data)
    return GitRef(ref=_require_str(data.get("ref")), sha=_optional_str(data.get("sha")))


def _push(payload: dict[str, Any]) -> PushEvent:
    commits = payload.get("commits") or []
    if not isinstance(commits, list):
        raise _Unclassifiable

    head_commit = payload.get("head_commit")
    return PushEvent(
        ref=_require_str(payload.get("ref")),
        pusher=_require_str(_mapping(payload.get("pusher")).get("name")),
        commits=tuple(_commit(commit) for commit in commits),
        head_commit=_commit(head_commit) if head_commit else None,
        repository=_repository(payload),
        before=_optional_str(payload.get("before")),
        after=_optional_str(payload.get("after")),
        created=payload.get("created") is True,
        deleted=payload.get("deleted") is True,
    )


def _pull_request(payload: dict[str, Any]) -> PullRequestEvent | MergeEvent | None:
    action = payload.get("action")
    pr = payload.get("pull_request")
    if not isinstance(pr, dict):
        return None

    if action in PULL_REQUEST_ACTIONS:
        return PullRequestEvent(
            number=_require_int(pr.get("number", payload.get("number"))),
            action=action,
            head=_git_ref(pr.get("head")),
            base=_git_ref(pr.get("base")),
            title=_optional_str(pr.get("title")) or "",
            repository=_repository(payload),
            sender=_optional_str(_mapping(payload.get("sender")).get("login")),
        )

    if action == "closed" and pr.get("merged") is True:
        return MergeEvent(
            number=_require_int(pr.get("number", payload.get("number"))),
            head=_git_ref(pr.get("head")),
            base=_git_ref(pr.get("base")),
            merged_by=_optional_str(_mapping(pr.get("merged_by")).get("login")),
            merged_at=_parse_timestamp(pr.get("merged_at")),
            repository=_repository(payload),
        )

    return None


def classify(verified: VerifiedPayload, event_type: str | None) -> Event:
    """
    Map a verified payload to exactly one event variant.

    Payloads that do not match a known shape become UnknownEvent; this never raises.
    """
    payload = verified.data
    event: Event | None = None

    try:
        if not isinstance(payload, dict):
            event = None
        elif event_type == "push":
            event = _push(payload)
        elif event_type == "pull_request":
            event = _pull_request(payload)
    except _Unclassifiable:
        event = None

    if event is None:
        return UnknownEvent(raw_header=event_type, raw_payload=payload)
    return event
