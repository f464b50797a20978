"""Task driver - processes a batch of items one event-loop tick at a time."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Sequence

from repolock.errors import BatchCancelled

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class Batch:
    """Handle for one in-flight batch."""

    def __init__(self, title: str, total: int, on_cancel: Optional[Callable[[], None]] = None):
        self.title = title
        self.total = total
        self.cancelled = False
        self.done = False
        self.task: Optional[asyncio.Task] = None
        self._on_cancel = on_cancel

    def cancel(self) -> None:
        """Cancel cooperatively; the running item is allowed to finish but its result is dropped."""
        if self.cancelled or self.done:
            return
        self.cancelled = True
        logger.debug(f"Cancelled batch: {self.title}")
        if self._on_cancel:
            self._on_cancel()


class TaskDriver:
    """Runs at most one batch at a time.

    Starting a batch cancels whatever batch is still in flight (its
    ``on_cancel`` fires first). Each item is processed on its own loop tick;
    a failing item is logged and skipped.
    """

    def __init__(self):
        self._current: Optional[Batch] = None

    @property
    def is_busy(self) -> bool:
        return self._current is not None

    def cancel_current(self) -> None:
        if self._current is not None:
            batch = self._current
            self._current = None
            batch.cancel()

    reset = cancel_current

    def _start(self, title: str, total: int, on_cancel: Optional[Callable[[], None]]) -> Batch:
        self.cancel_current()
        batch = Batch(title, total, on_cancel)
        self._current = batch
        return batch

    def _finish(self, batch: Batch) -> None:
        batch.done = True
        if self._current is batch:
            self._current = None

    @staticmethod
    def _item_name(item: Any, index: int, get_item_name: Optional[Callable[[Any], str]]) -> str:
        return get_item_name(item) if get_item_name else str(index)

    def run(
        self,
        items: Sequence[Any],
        work: Callable[[Any], Any],
        on_complete: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        title: str = "Processing",
        get_item_name: Optional[Callable[[Any], str]] = None,
    ) -> Batch:
        """Schedule ``work`` over ``items`` on the running event loop.

        ``work`` may be a plain function or return an awaitable. Results are
        collected by item name (``get_item_name`` or the 1-based position) and
        handed to ``on_complete``; failed items have no result.

        Returns:
            The batch handle
        """
        batch = self._start(title, len(items), on_cancel)

        if not items:
            self._finish(batch)
            if on_complete:
                on_complete({})
            return batch

        batch.task = asyncio.get_running_loop().create_task(
            self._drive(batch, items, work, on_complete, on_progress, get_item_name)
        )
        return batch

    async def _drive(self, batch, items, work, on_complete, on_progress, get_item_name) -> None:
        results: Dict[str, Any] = {}
        total = len(items)

        for index, item in enumerate(items, 1):
            # one item per tick
            await asyncio.sleep(0)
            if batch.cancelled:
                return

            item_name = self._item_name(item, index, get_item_name)
            if on_progress:
                on_progress(index, total, item_name)

            try:
                result = work(item)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.warning(f"Error processing {item_name}: {e}")
                continue

            if batch.cancelled:
                return
            results[item_name] = result

        await asyncio.sleep(0)
        if batch.cancelled:
            return

        self._finish(batch)
        if on_complete:
            on_complete(results)

    async def process(
        self,
        items: Sequence[Any],
        work: Callable[[Any], Any],
        on_progress: Optional[ProgressCallback] = None,
        title: str = "Processing",
        get_item_name: Optional[Callable[[Any], str]] = None,
    ) -> Dict[str, Any]:
        """Awaitable form of ``run``.

        Raises:
            BatchCancelled: if another batch superseded this one
        """
        future = asyncio.get_running_loop().create_future()

        def on_complete(results: Dict[str, Any]) -> None:
            if not future.done():
                future.set_result(results)

        def on_cancel() -> None:
            if not future.done():
                future.set_exception(BatchCancelled(f"{title} was superseded"))

        self.run(
            items,
            work,
            on_complete=on_complete,
            on_progress=on_progress,
            on_cancel=on_cancel,
            title=title,
            get_item_name=get_item_name,
        )
        return await future

    def run_sync(
        self,
        items: Sequence[Any],
        work: Callable[[Any], Any],
        on_progress: Optional[ProgressCallback] = None,
        title: str = "Processing",
        get_item_name: Optional[Callable[[Any], str]] = None,
    ) -> Dict[str, Any]:
        """Process every item immediately, without yielding.

        Used in headless execution; results match ``run``. ``work`` must not
        return an awaitable here.
        """
        batch = self._start(title, len(items), None)
        results: Dict[str, Any] = {}
        total = len(items)
        try:
            for index, item in enumerate(items, 1):
                item_name = self._item_name(item, index, get_item_name)
                if on_progress:
                    on_progress(index, total, item_name)
                try:
                    results[item_name] = work(item)
                except Exception as e:
                    logger.warning(f"Error processing {item_name}: {e}")
        finally:
            self._finish(batch)
        return results
