"""Batch orchestration: fan uploads out to concurrent extraction calls.

Results are published twice per batch: once as pending placeholders with
their final ids, and once with every outcome settled. Each file's failure
is attached to its own result and never escapes the join.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Optional

from .concurrency import CapacityLimiter, run_with_timeout
from .exceptions import describe_error
from .extraction import Extractor
from .images import EMPTY_SELECTION_MESSAGE
from .models import BatchSummary, ProcessedResult, UploadedFile

logger = logging.getLogger(__name__)

Listener = Callable[["BatchState"], None]


class BatchState:
    """The shared result collection observed by the front end.

    ``results`` is always replaced as a whole. Replacing it releases the
    previews of entries that do not survive into the new collection.
    """

    def __init__(self) -> None:
        self.results: tuple[ProcessedResult, ...] = ()
        self.is_loading = False
        self.global_error: Optional[str] = None
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def publish(self, results: Sequence[ProcessedResult], is_loading: bool) -> None:
        kept = {id(r.preview) for r in results}
        for previous in self.results:
            if id(previous.preview) not in kept:
                previous.preview.release()
        self.results = tuple(results)
        self.is_loading = is_loading
        self._notify()

    def fail(self, message: str) -> None:
        self.global_error = message
        self.is_loading = False
        self._notify()

    def clear(self) -> None:
        """Release every held preview and drop all results."""
        self.global_error = None
        self.publish((), is_loading=False)


class BatchOrchestrator:
    """Runs one extraction call per upload and collects per-file outcomes."""

    def __init__(
        self,
        extractor: Extractor,
        state: Optional[BatchState] = None,
        max_concurrency: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        on_result: Optional[Callable[[ProcessedResult], None]] = None
    ) -> None:
        self.extractor = extractor
        self.state = state or BatchState()
        self.limiter = CapacityLimiter(max_concurrency)
        self.timeout_seconds = timeout_seconds
        self.on_result = on_result

    async def _process_one(self, pending: ProcessedResult, upload: UploadedFile) -> ProcessedResult:
        name = upload.file.name
        try:
            async with self.limiter:
                data = await run_with_timeout(
                    lambda: self.extractor(upload.image_base64, upload.mime_type),
                    self.timeout_seconds
                )
            settled = pending.succeeded(data)
            logger.info(f"[BATCH] {name} - Success")
        except Exception as exc:
            settled = pending.failed(describe_error(exc))
            logger.error(f"[BATCH] {name} - Failed: {settled.error[:150]}")

        if self.on_result is not None:
            self.on_result(settled)
        return settled

    async def submit(self, uploads: Sequence[UploadedFile]) -> tuple[ProcessedResult, ...]:
        """Process a batch, returning exactly one result per upload, in order."""
        self.state.global_error = None
        if not uploads:
            logger.warning("[BATCH] Submitted with no files")
            self.state.fail(EMPTY_SELECTION_MESSAGE)
            return ()

        pending = [ProcessedResult(file=u.file, preview=u.preview) for u in uploads]
        self.state.publish(pending, is_loading=True)
        logger.info(f"[BATCH] Processing {len(pending)} files")

        tasks = [
            asyncio.create_task(self._process_one(slot, upload))
            for slot, upload in zip(pending, uploads)
        ]
        settled = await asyncio.gather(*tasks)

        self.state.publish(settled, is_loading=False)
        summary = BatchSummary.from_results(settled)
        logger.info(f"[BATCH] Done: {summary.succeeded} succeeded, {summary.failed} failed")
        return self.state.results

    def close(self) -> None:
        self.state.clear()

    def __enter__(self) -> "BatchOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    async def __aenter__(self) -> "BatchOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
