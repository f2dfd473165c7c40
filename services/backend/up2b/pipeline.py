"""Upload pipeline: compression, dispatch, progress and outcome per job.

Job states::

    QUEUED -> [COMPRESSING] -> UPLOADING -> SUCCEEDED | WARNING | FAILED

Every transition is published on the event channel together with the job
id. Batches run one job at a time in drop order.
"""

import itertools
import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from up2b.compress import Compressor
from up2b.errors import DuplicateUpload, UnsupportedFormat, Up2bError, ValidationError
from up2b.events import CompressEvent, EventChannel, JobStateEvent, ProgressEvent
from up2b.managers.base import Manager
from up2b.repositories.image_cache import ImageCache
from up2b.schemas.descriptor import ImageFormat
from up2b.schemas.job import (
    Compressing,
    Failed,
    JobState,
    Succeeded,
    UploadJob,
    Uploading,
    UploadWarning,
)
from up2b.transport import ProgressCallback

logger = logging.getLogger(__name__)


class UploadPipeline:
    """Drives upload jobs against one provider manager."""

    def __init__(
        self,
        manager: Manager,
        events: Optional[EventChannel] = None,
        cache: Optional[ImageCache] = None,
        compressor: Optional[Compressor] = None,
        automatic_compression: bool = False,
        job_ids: Optional[Iterator[int]] = None,
    ):
        """Initialize the pipeline.

        Args:
            manager: Manager of the active provider.
            events: Channel receiving job, progress and compression events.
            cache: Image cache that successful uploads are appended to.
            compressor: Compression collaborator; without one oversized
                files fail the size check.
            automatic_compression: Whether oversized files are compressed.
            job_ids: Source of job ids, shared when several pipelines must
                not reuse ids.
        """
        self.manager = manager
        self.events = events or EventChannel()
        self.cache = cache
        self.compressor = compressor
        self.automatic_compression = automatic_compression
        self._ids = job_ids if job_ids is not None else itertools.count(1)

    def create_job(self, path: str | Path) -> UploadJob:
        return UploadJob(id=next(self._ids), path=Path(path))

    def _set_state(self, job: UploadJob, state: JobState) -> None:
        job.state = state
        self.events.emit(JobStateEvent(job_id=job.id, state=state))

    def _progress_reporter(self, job: UploadJob) -> ProgressCallback:
        last_sent = 0

        def report(sent: int, total: int) -> None:
            nonlocal last_sent
            if sent < last_sent:
                return
            last_sent = sent
            event = ProgressEvent(job_id=job.id, progress=sent, total=total)
            job.state = Uploading(percent=event.percent)
            self.events.emit(event)

        return report

    def _check_format(self, path: Path) -> None:
        image_format = ImageFormat.from_path(path)
        if image_format is None or image_format not in self.manager.allowed_formats:
            allowed = ", ".join(f.value for f in self.manager.allowed_formats)
            raise UnsupportedFormat(
                f"{self.manager.code} does not accept {path.suffix or 'extensionless'} "
                f"images (allowed: {allowed})"
            )

    async def _maybe_compress(self, job: UploadJob, size: int) -> Path:
        if not self.automatic_compression or self.compressor is None:
            return job.path

        if size <= self.manager.max_size:
            self.events.emit(CompressEvent(job_id=job.id, type="NO"))
            return job.path

        self._set_state(job, Compressing())
        self.events.emit(CompressEvent(job_id=job.id, type="START"))
        logger.info(
            f"Job {job.id}: {job.path.name} is {size} bytes, over the "
            f"{self.manager.max_size} bytes limit of {self.manager.code}; compressing"
        )

        result = await self.compressor.compress(
            job.path, self.manager.max_size, self.manager.compressed_format
        )
        self.events.emit(
            CompressEvent(
                job_id=job.id,
                type="END",
                filename=job.path.name,
                original=result.original_size,
                compressed=result.compressed_size,
            )
        )
        self._set_state(
            job,
            Compressing(
                original_bytes=result.original_size,
                compressed_bytes=result.compressed_size,
            ),
        )
        return result.path

    async def process(self, job: UploadJob) -> UploadJob:
        """Run one job to a terminal state.

        Errors never escape: they end the job in ``FAILED``, or in
        ``WARNING`` for a duplicate upload. A compressed copy is deleted once
        the job ends.
        """
        upload_path = job.path
        try:
            if not job.path.is_file():
                raise ValidationError(f"image file not found: {job.path}")
            self._check_format(job.path)
            upload_path = await self._maybe_compress(job, job.path.stat().st_size)

            self._set_state(job, Uploading())
            record = await self.manager.upload(
                upload_path, on_progress=self._progress_reporter(job)
            )
        except DuplicateUpload as e:
            logger.warning(f"Job {job.id}: {job.path.name} already exists at {e.url}")
            self._set_state(job, UploadWarning(reason=e.message, url=e.url))
        except Up2bError as e:
            logger.error(f"Job {job.id}: upload of {job.path} failed: [{e.code}] {e.message}")
            self._set_state(job, Failed(code=e.code, detail=e.message))
        else:
            if self.cache is not None:
                self.cache.add(self.manager.code, record)
            self._set_state(
                job, Succeeded(url=record.url, deleted_id=record.deleted_id, thumb=record.thumb)
            )
        finally:
            if upload_path != job.path:
                upload_path.unlink(missing_ok=True)
        return job

    async def run_batch(self, paths: Iterable[str | Path]) -> list[UploadJob]:
        """Upload ``paths`` one after another in the given order."""
        jobs = [self.create_job(path) for path in paths]
        for job in jobs:
            self._set_state(job, job.state)
        for job in jobs:
            await self.process(job)
        return jobs
