"""Request transport: hands descriptors to the REST client.

Exactly one of the two callbacks fires per submitted request. Synchronous
requests are performed immediately and the callback's return value is
handed back to the caller. Asynchronous requests are queued and performed
on the next scheduling tick (``drain`` or ``drain_async``), one at a time,
in submission order.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

import requests

from .async_utils import run_sync_limited
from .client import BoardClient
from .request_builder import RequestDescriptor, build_call

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[Any], Any]
FailureCallback = Callable[[Exception], Any]


@dataclass(frozen=True, slots=True)
class PendingRequest:
    descriptor: RequestDescriptor
    on_success: SuccessCallback
    on_failure: FailureCallback


class RequestTransport:
    """Perform request descriptors against a ``BoardClient``.

    Args:
        client: REST client used to execute formatted calls.
    """

    def __init__(self, client: BoardClient) -> None:
        self.client = client
        self._queue: deque[PendingRequest] = deque()

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def submit(
        self,
        descriptor: RequestDescriptor,
        synchronous: bool,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> Any | None:
        """Send *descriptor* now (synchronous) or queue it.

        Callbacks must not raise; an exception escaping one aborts a drain
        and leaves the remaining requests queued.

        Returns:
            The fired callback's return value for synchronous requests,
            ``None`` for queued ones.
        """
        pending = PendingRequest(descriptor, on_success, on_failure)
        if synchronous:
            return self._perform(pending)
        self._queue.append(pending)
        logger.debug(
            "Queued %s %s (%d pending)",
            descriptor.operation.value,
            descriptor.kind.value,
            len(self._queue),
        )
        return None

    def drain(self) -> list[Any]:
        """Perform every queued request; return the callback results."""
        results: list[Any] = []
        while self._queue:
            results.append(self._perform(self._queue.popleft()))
        return results

    async def drain_async(self) -> list[Any]:
        """Like ``drain`` but run each blocking call in a worker thread.

        Callbacks still run on the event loop thread, one request at a time.
        """
        results: list[Any] = []
        while self._queue:
            pending = self._queue.popleft()
            try:
                call = build_call(pending.descriptor)
                response = await run_sync_limited(self.client.execute, call)
            except (requests.RequestException, ValueError) as exc:
                results.append(self._fail(pending, exc))
                continue
            results.append(pending.on_success(response))
        return results

    def _perform(self, pending: PendingRequest) -> Any:
        try:
            call = build_call(pending.descriptor)
            response = self.client.execute(call)
        except (requests.RequestException, ValueError) as exc:
            return self._fail(pending, exc)
        return pending.on_success(response)

    @staticmethod
    def _fail(pending: PendingRequest, exc: Exception) -> Any:
        logger.error(
            "Request %s %s failed: %s",
            pending.descriptor.operation.value,
            pending.descriptor.kind.value,
            exc,
        )
        return pending.on_failure(exc)
