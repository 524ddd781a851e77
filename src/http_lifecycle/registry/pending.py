"""Registry of in-flight requests keyed by identity.

A newer request with the same identity supersedes the older one: the
older request's :class:`CancellationHandle` is canceled synchronously at
registration time, before the newer request reaches the transport.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional, TypeVar

from ..exceptions import CanceledError
from ..models.request import RequestIdentity

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CANCEL_REASON = "Request canceled by user"


class CancellationHandle:
    """One-shot cancellation signal attached to a single request.

    :param identity: Identity of the request this handle belongs to
    """

    def __init__(self, identity: Optional[RequestIdentity] = None):
        self.identity = identity
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = DEFAULT_CANCEL_REASON) -> bool:
        """Signal cancellation. Returns False if already canceled."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        logger.debug(f"Canceled request {self.identity}: {reason}")
        return True

    def raise_if_cancelled(self, request: Optional[Dict[str, Any]] = None) -> None:
        """Raise :class:`CanceledError` if the handle has been canceled."""
        if self._event.is_set():
            raise CanceledError(self._reason or DEFAULT_CANCEL_REASON, request=request)

    async def wait(self) -> None:
        """Wait until the handle is canceled."""
        await self._event.wait()

    async def run(
        self, awaitable: Awaitable[T], request: Optional[Dict[str, Any]] = None
    ) -> T:
        """Await ``awaitable`` unless the handle is canceled first.

        A cancellation that lands while the awaitable is pending abandons
        it and raises :class:`CanceledError`. So does a cancellation that
        lands after it completed but before this coroutine resumed: a
        superseded request never delivers a result.

        :param awaitable: The dispatch to race against cancellation
        :param request: Request descriptor attached to the raised error
        :raises CanceledError: If the handle was canceled
        """
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            _abandon(task)
            self.raise_if_cancelled(request)

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if self.cancelled:
            _abandon(task)
            self.raise_if_cancelled(request)
        return task.result()

    def __repr__(self) -> str:
        state = f"cancelled={self._reason!r}" if self.cancelled else "active"
        return f"CancellationHandle({self.identity}, {state})"


def _abandon(task: "asyncio.Future[Any]") -> None:
    """Cancel a task whose outcome is no longer wanted."""
    if task.done():
        if not task.cancelled():
            # Mark the exception as retrieved
            task.exception()
        return
    task.cancel()


@dataclass
class PendingRequestRecord:
    """Registry entry: the handle of the live request for an identity."""

    identity: RequestIdentity
    handle: CancellationHandle


class PendingRequestRegistry:
    """At most one live request per identity.

    When disabled, ``register`` and ``cancel_if_present`` are no-ops.
    """

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._records: Dict[RequestIdentity, PendingRequestRecord] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    def register(
        self,
        identity: RequestIdentity,
        handle: CancellationHandle,
        cancel_previous: bool = True,
    ) -> Optional[CancellationHandle]:
        """Record ``handle`` as the live request for ``identity``.

        :param identity: Request identity
        :param handle: Handle of the new request
        :param cancel_previous: Cancel the superseded request, if any
        :return: The superseded handle, if there was one
        """
        if not self._enabled:
            return None

        previous = self._records.get(identity)
        if previous is not None and cancel_previous:
            previous.handle.cancel(DEFAULT_CANCEL_REASON)

        self._records[identity] = PendingRequestRecord(identity=identity, handle=handle)
        return previous.handle if previous else None

    def cancel_if_present(
        self, identity: RequestIdentity, reason: str = DEFAULT_CANCEL_REASON
    ) -> bool:
        """Cancel and remove the live request for ``identity``.

        :return: True if a request was canceled
        """
        if not self._enabled:
            return False

        record = self._records.pop(identity, None)
        if record is None:
            return False
        return record.handle.cancel(reason)

    def clear(
        self, identity: RequestIdentity, handle: Optional[CancellationHandle] = None
    ) -> bool:
        """Remove the record for ``identity``.

        With ``handle``, the record is removed only while it still belongs
        to that handle.
        """
        record = self._records.get(identity)
        if record is None:
            return False
        if handle is not None and record.handle is not handle:
            return False
        del self._records[identity]
        return True

    def cancel_all(self, reason: str = DEFAULT_CANCEL_REASON) -> int:
        """Cancel every live request and empty the registry."""
        records = list(self._records.values())
        self._records.clear()
        count = sum(1 for record in records if record.handle.cancel(reason))
        if count:
            logger.info(f"Canceled {count} pending requests")
        return count

    def get(self, identity: RequestIdentity) -> Optional[CancellationHandle]:
        record = self._records.get(identity)
        return record.handle if record else None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._records
