import asyncio

from hookrelay.classifier import classify
from hookrelay.errors import InvalidStateError
from hookrelay.events import EventType, MergeEvent, PushEvent
from hookrelay.services import DispatchOutcome, Dispatcher, HandlerRegistry
from hookrelay.stores import MemoryDeliveryStore
from hookrelay.verifier import parse

registry = HandlerRegistry()
deployed_refs: set[str] = set()


@registry.on(EventType.PUSH, priority=10)
async def deploy_main(event: PushEvent) -> None:
    if event.branch != "main":
        return
    deployed_refs.add(event.after or event.ref)


@registry.on(EventType.PUSH)
def count_commits(event: PushEvent) -> None:
    print(f"{event.pusher} pushed {len(event.commits)} commit(s) to {event.ref}")


@registry.on(EventType.MERGE)
async def close_tracking_issue(event: MergeEvent) -> None:
    if event.merged_by is None:
        raise InvalidStateError(f"PR #{event.number} merged without a merging user")


async def example_dispatch_workflow():
    store = MemoryDeliveryStore()
    dispatcher = Dispatcher(store=store, registry=registry, handler_timeout=5.0)

    body = (
        b'{"ref": "refs/heads/main", "after": "abc123", "pusher": {"name": "octocat"},'
        b' "commits": [{"id": "abc123", "message": "feat: add dashboard"}]}'
    )
    verified = parse(body)
    event = classify(verified, "push")

    delivery = await store.record_received(
        "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        signature_valid=verified.signature_valid,
        raw_payload_hash=verified.raw_payload_hash,
        event_type="push",
    )

    result = await dispatcher.dispatch(delivery, event)
    assert result.outcome == DispatchOutcome.PROCESSED

    replay = await dispatcher.dispatch(delivery, event)
    assert replay.outcome == DispatchOutcome.DUPLICATE

    return result


if __name__ == "__main__":
    asyncio.run(example_dispatch_workflow())
