r"""
Sequential batch conversion.

Items are converted strictly one after another (index 0 .. N-1) so that at
most one decoded image and its frames are in memory at any time.  Each
item runs in its own fresh ``ConversionPipeline``; a failure marks that
item ``Error`` and the batch moves on.

Status transitions are written only here, never by a pipeline:

    Ready --> Processing --> Completed
                        \--> Error

Cancellation
------------
Cancelling the token passed to ``run`` aborts the item being encoded (it
ends in ``Error``) and leaves every later item ``Ready``; the report is
marked ``cancelled``.  A cancel that arrives after the last item has
finished changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from imagepipe.config import PipelineSettings
from imagepipe.decoder import load_source
from imagepipe.dimensions import parse_size_selector
from imagepipe.encoders import CancelToken
from imagepipe.exceptions import Aborted, ConversionFailed, NoValidFilesInBatch
from imagepipe.naming import download_filename
from imagepipe.pipeline import ConversionPipeline
from imagepipe.session import Session
from imagepipe.types import (
    BatchItem,
    BatchStatus,
    TargetFormat,
    TargetSpec,
    UploadedFile,
)

logger = logging.getLogger(__name__)

StatusCallback = Callable[[int, BatchItem], None]
BatchProgressCallback = Callable[[float], None]

_ALLOWED_TRANSITIONS = {
    BatchStatus.READY: {BatchStatus.PROCESSING},
    BatchStatus.PROCESSING: {BatchStatus.COMPLETED, BatchStatus.ERROR},
    BatchStatus.COMPLETED: set(),
    BatchStatus.ERROR: set(),
}


@dataclass
class BatchReport:
    """Aggregate outcome of one batch run."""
    items: list[BatchItem]
    format: TargetFormat
    size_selector: str
    cancelled: bool = False
    progress: list[float] = field(default_factory=list)

    def _count(self, status: BatchStatus) -> int:
        return sum(1 for item in self.items if item.status is status)

    @property
    def completed(self) -> int:
        return self._count(BatchStatus.COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(BatchStatus.ERROR)

    @property
    def pending(self) -> int:
        return self._count(BatchStatus.READY)

    def summary(self) -> str:
        text = (f"{self.completed} completed, {self.failed} failed "
                f"of {len(self.items)}")
        if self.cancelled:
            text += f" (cancelled, {self.pending} not started)"
        return text


def filter_image_files(files: Iterable[UploadedFile]) -> list[UploadedFile]:
    """Keep only uploads whose declared MIME type is ``image/*``."""
    return [f for f in files if f.mime_type.lower().startswith("image/")]


def batch_download_name(item: BatchItem, fmt: TargetFormat) -> str:
    return download_filename(item.source_file.display_name, fmt)


class BatchScheduler:
    """Runs conversions over a queue of uploads, one at a time."""

    def __init__(self, session: Session, settings: PipelineSettings | None = None) -> None:
        self.session = session
        self.settings = settings or session.settings
        self.items: list[BatchItem] = []

    def queue(self, files: Iterable[UploadedFile]) -> list[BatchItem]:
        """Replace the queue with the image files among *files*.

        Raises
        ------
        NoValidFilesInBatch
            If none of *files* is an image.
        """
        images = filter_image_files(files)
        if not images:
            raise NoValidFilesInBatch("No valid image files found.")
        self.items = [BatchItem(source_file=f) for f in images]
        logger.info("%d images ready for batch processing.", len(self.items))
        return self.items

    def run(
        self,
        fmt: TargetFormat,
        size_selector: str,
        *,
        items: Sequence[BatchItem] | None = None,
        on_status: StatusCallback | None = None,
        on_progress: BatchProgressCallback | None = None,
        on_complete: Callable[[BatchReport], None] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> BatchReport:
        """Convert every queued item to *fmt* at *size_selector*.

        The size selector is validated once up front; an invalid selector
        fails the whole call before any item changes state.
        """
        parse_size_selector(size_selector)
        items = list(self.items if items is None else items)
        if not items:
            raise NoValidFilesInBatch("The batch queue is empty.")
        stale = [item.source_file.display_name for item in items
                 if item.status is not BatchStatus.READY]
        if stale:
            raise ValueError(
                f"Batch items must be Ready; queue them again: {', '.join(stale)}"
            )

        token = cancel_token or CancelToken()
        report = BatchReport(items=items, format=fmt, size_selector=size_selector)
        total = len(items)
        logger.info("Batch: %d item(s) -> %s (%s).", total, fmt.label, size_selector)

        interrupted = False
        for index, item in enumerate(items):
            if token.cancelled:
                report.cancelled = True
                logger.info("Batch cancelled before item %d/%d.", index + 1, total)
                break

            self._advance(index, item, BatchStatus.PROCESSING, on_status)
            try:
                result = self._convert_item(item, fmt, size_selector, token)
            except Exception as exc:
                # Any fault stays with this item; the queue continues.
                item.error_message = str(exc)
                if isinstance(exc, ConversionFailed) and isinstance(exc.cause, Aborted):
                    interrupted = True
                logger.warning("Error processing %s: %s",
                               item.source_file.display_name, exc)
                self._advance(index, item, BatchStatus.ERROR, on_status)
            else:
                item.result = result
                item.result_blob = result.blob
                self._advance(index, item, BatchStatus.COMPLETED, on_status)

            fraction = (index + 1) / total
            report.progress.append(fraction)
            if on_progress is not None:
                on_progress(fraction)

        if interrupted:
            report.cancelled = True
        logger.info("Batch processing finished: %s.", report.summary())
        if on_complete is not None:
            on_complete(report)
        return report

    def _convert_item(self, item: BatchItem, fmt: TargetFormat,
                      size_selector: str, token: CancelToken):
        source = load_source(item.source_file)
        with self.session.activate(source):
            pipeline = ConversionPipeline(
                source,
                TargetSpec(format=fmt, size_selector=size_selector),
                settings=self.settings,
                jpeg_quality=self.settings.batch_jpeg_quality,
                gif_workers=self.settings.batch_gif_workers,
                cancel_token=token,
            )
            return pipeline.run()

    @staticmethod
    def _advance(index: int, item: BatchItem, status: BatchStatus,
                 on_status: StatusCallback | None) -> None:
        if status not in _ALLOWED_TRANSITIONS[item.status]:
            raise RuntimeError(
                f"Illegal batch transition {item.status.value} -> {status.value}"
            )
        item.status = status
        if on_status is not None:
            on_status(index, item)
