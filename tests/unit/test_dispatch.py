"""Unit tests for bounded-concurrency multicast dispatch."""

from __future__ import annotations

import asyncio

import pytest

from fbadmin.core.dispatch import MulticastDispatcher
from fbadmin.exceptions import DispatchError, SendTimeoutError, ServiceResponseError
from fbadmin.schemas.message import Message, MessageBody, Notification

TEMPLATE = MessageBody(notification=Notification(title="Hello", body="World"), data={"k": "v"})


class _SenderStub:
    """Send function recording messages and peak concurrency."""

    def __init__(
        self,
        delays: dict[str, float] | None = None,
        failures: frozenset[str] = frozenset(),
    ) -> None:
        self.delays = delays or {}
        self.failures = failures
        self.sent: list[Message] = []
        self.in_flight = 0
        self.peak = 0

    async def __call__(self, message: Message) -> str:
        self.sent.append(message)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(message.token or "", 0.0))
            if message.token in self.failures:
                raise ServiceResponseError("Requested entity was not found.", 404)
            return f"projects/demo-project/messages/{message.token}"
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_responses_follow_target_order_not_completion_order() -> None:
    """Slow early targets still occupy the first result slots."""
    sender = _SenderStub(delays={"t1": 0.05, "t2": 0.02, "t3": 0.0})
    dispatcher = MulticastDispatcher(send=sender, concurrency=3)

    batch = await dispatcher.send_multicast(TEMPLATE, ["t1", "t2", "t3"])

    assert [response.message_id for response in batch.responses] == [
        "projects/demo-project/messages/t1",
        "projects/demo-project/messages/t2",
        "projects/demo-project/messages/t3",
    ]
    assert batch.success_count == 3
    assert batch.failure_count == 0


@pytest.mark.asyncio
async def test_failed_send_is_isolated_to_its_slot() -> None:
    """One failing target does not affect its siblings."""
    sender = _SenderStub(failures=frozenset({"t2"}))
    dispatcher = MulticastDispatcher(send=sender)

    batch = await dispatcher.send_multicast(TEMPLATE, ["t1", "t2", "t3"])

    assert batch.success_count == 2
    assert batch.failure_count == 1
    assert [response.success for response in batch.responses] == [True, False, True]
    failure = batch.responses[1]
    assert failure.message_id is None
    assert isinstance(failure.exception, ServiceResponseError)
    assert failure.exception.status_code == 404


@pytest.mark.asyncio
async def test_slow_send_times_out_without_blocking_others() -> None:
    """A send exceeding the per-item timeout is recorded as a timeout failure."""
    sender = _SenderStub(delays={"slow": 1.0})
    dispatcher = MulticastDispatcher(send=sender, per_item_timeout=0.05)

    batch = await dispatcher.send_multicast(TEMPLATE, ["fast", "slow"])

    assert batch.responses[0].success
    assert isinstance(batch.responses[1].exception, SendTimeoutError)
    assert batch.success_count + batch.failure_count == 2


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_bound() -> None:
    """At most ``concurrency`` sends are in flight at once."""
    sender = _SenderStub(delays={f"t{index}": 0.01 for index in range(12)})
    dispatcher = MulticastDispatcher(send=sender, concurrency=3)

    batch = await dispatcher.send_multicast(TEMPLATE, [f"t{index}" for index in range(12)])

    assert batch.success_count == 12
    assert 1 <= sender.peak <= 3


@pytest.mark.asyncio
async def test_each_target_receives_the_shared_body() -> None:
    """Per-target messages copy the template content and set only the token."""
    sender = _SenderStub()
    dispatcher = MulticastDispatcher(send=sender)

    await dispatcher.send_multicast(TEMPLATE, ["t1", "t2"])

    assert sorted(message.token for message in sender.sent) == ["t1", "t2"]
    for message in sender.sent:
        assert message.notification == TEMPLATE.notification
        assert message.data == {"k": "v"}
        assert message.topic is None


@pytest.mark.asyncio
async def test_override_send_function_is_used() -> None:
    """A send function passed per call replaces the default one."""
    default_sender = _SenderStub()
    override_sender = _SenderStub()
    dispatcher = MulticastDispatcher(send=default_sender)

    await dispatcher.send_multicast(TEMPLATE, ["t1"], send=override_sender)

    assert default_sender.sent == []
    assert len(override_sender.sent) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("targets", "code"),
    [
        ([], "no_targets"),
        (["t1", ""], "invalid_targets"),
        (["t1", "   "], "invalid_targets"),
        (["t1", 42], "invalid_targets"),
        ([f"t{index}" for index in range(501)], "too_many_targets"),
    ],
)
async def test_invalid_target_lists_are_rejected_before_sending(
    targets: list[object], code: str
) -> None:
    """Validation failures raise and never call the send function."""
    sender = _SenderStub()
    dispatcher = MulticastDispatcher(send=sender, max_targets=500)

    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.send_multicast(TEMPLATE, targets)

    assert exc_info.value.code == code
    assert sender.sent == []


@pytest.mark.asyncio
async def test_exactly_max_targets_is_accepted() -> None:
    """The target limit is inclusive."""
    sender = _SenderStub()
    dispatcher = MulticastDispatcher(send=sender, max_targets=500, concurrency=50)

    batch = await dispatcher.send_multicast(TEMPLATE, [f"t{index}" for index in range(500)])

    assert len(batch.responses) == 500
    assert batch.success_count == 500


def test_concurrency_must_be_positive() -> None:
    """A zero-width worker pool is a configuration error."""

    async def send(message: Message) -> str:
        return "unused"

    with pytest.raises(ValueError):
        MulticastDispatcher(send=send, concurrency=0)
