"""Bounded-concurrency multicast of one message body to many device tokens."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import structlog

from fbadmin.exceptions import DispatchError, SendTimeoutError
from fbadmin.schemas.message import Message, MessageBody

logger = structlog.get_logger(__name__)

SendFunc = Callable[[Message], Awaitable[str]]


@dataclass(frozen=True)
class SendResponse:
    """Outcome of sending to one target."""

    message_id: str | None = None
    exception: Exception | None = None

    @property
    def success(self) -> bool:
        """Return True when the send produced a message id."""
        return self.exception is None


@dataclass(frozen=True)
class BatchResponse:
    """Ordered per-target outcomes; ``responses[i]`` belongs to ``targets[i]``."""

    responses: list[SendResponse]

    @property
    def success_count(self) -> int:
        """Number of targets that were sent successfully."""
        return sum(1 for response in self.responses if response.success)

    @property
    def failure_count(self) -> int:
        """Number of targets that failed or timed out."""
        return len(self.responses) - self.success_count


class MulticastDispatcher:
    """Send one message body to many tokens through a fixed-width worker pool.

    A failing or timed-out send is recorded in its own slot and never
    affects its siblings; only pre-flight validation raises.
    """

    def __init__(
        self,
        send: SendFunc,
        max_targets: int = 500,
        concurrency: int = 10,
        per_item_timeout: float = 30.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1.")
        self._send = send
        self._max_targets = max_targets
        self._concurrency = concurrency
        self._per_item_timeout = per_item_timeout

    async def send_multicast(
        self,
        template: MessageBody,
        targets: Sequence[object],
        send: SendFunc | None = None,
    ) -> BatchResponse:
        """Send ``template`` to every target and return ordered outcomes."""
        tokens = self.validate_targets(targets)
        send_one = send or self._send
        messages = [Message(token=token, **template.body_fields()) for token in tokens]
        semaphore = asyncio.Semaphore(self._concurrency)

        async def worker(message: Message) -> SendResponse:
            async with semaphore:
                return await self._send_with_timeout(send_one, message)

        # gather returns results in argument order, not completion order.
        responses = await asyncio.gather(*(worker(message) for message in messages))
        batch = BatchResponse(responses=list(responses))
        logger.info(
            "multicast_completed",
            target_count=len(tokens),
            success_count=batch.success_count,
            failure_count=batch.failure_count,
        )
        return batch

    def validate_targets(self, targets: Sequence[object]) -> list[str]:
        """Reject empty, malformed or oversized target lists before any send."""
        if not targets:
            raise DispatchError("Multicast requires at least one target.", "no_targets")
        if not all(isinstance(target, str) and target.strip() for target in targets):
            raise DispatchError("Multicast targets must be non-empty strings.", "invalid_targets")
        if len(targets) > self._max_targets:
            raise DispatchError(
                f"Multicast supports at most {self._max_targets} targets.", "too_many_targets"
            )
        return [str(target) for target in targets]

    async def _send_with_timeout(self, send: SendFunc, message: Message) -> SendResponse:
        """Send one message, recording any failure in the response."""
        try:
            message_id = await asyncio.wait_for(send(message), timeout=self._per_item_timeout)
        except TimeoutError:
            return SendResponse(
                exception=SendTimeoutError(
                    f"Send did not complete within {self._per_item_timeout} seconds."
                )
            )
        except Exception as exc:
            return SendResponse(exception=exc)
        return SendResponse(message_id=message_id)
