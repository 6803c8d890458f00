import logging
import threading
import uuid
import concurrent.futures
from pathlib import Path
from typing import Dict, Optional
from dualcam.config.models import AppConfig, PipelineConfig
from dualcam.domain.events import JobCompleted, JobFailed, JobProgressUpdated, JobStarted
from dualcam.domain.exceptions import JobNotFound, JobNotReady
from dualcam.domain.models import Job, JobSnapshot, JobStatus, StreamOrder
from dualcam.infrastructure.event_bus import EventBus
from dualcam.infrastructure.ffmpeg import FFmpegAdapter
from dualcam.infrastructure.ffprobe import FFprobeAdapter
from dualcam.pipeline.padding import DEFAULT_TOLERANCE
from dualcam.pipeline.strategies import PipelineStrategy, select_strategy

logger = logging.getLogger(__name__)

class JobManager:
    """Registry of jobs and the only entry point for callers.

    Each job runs on one worker thread of the pool. Status reads and the
    running pipelines' writes are serialized by a single lock; a job's record
    is only ever written by the pipeline driving it.
    """

    def __init__(
        self,
        ffmpeg: FFmpegAdapter,
        ffprobe: FFprobeAdapter,
        event_bus: EventBus,
        output_dir: Path,
        max_jobs: int = 2,
        padding_tolerance: float = DEFAULT_TOLERANCE
    ):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.event_bus = event_bus
        self.output_dir = output_dir
        self.padding_tolerance = padding_tolerance

        self._jobs: Dict[str, Job] = {}
        self._futures: Dict[str, concurrent.futures.Future] = {}
        self._lock = threading.RLock()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_jobs, thread_name_prefix="dualcam-job"
        )

    @classmethod
    def from_config(cls, config: AppConfig, event_bus: EventBus) -> "JobManager":
        ffprobe = FFprobeAdapter(config.tools.ffprobe)
        ffmpeg = FFmpegAdapter(
            ffprobe,
            ffmpeg_path=config.tools.ffmpeg,
            intermediate=config.intermediate,
            debug=config.general.debug
        )
        return cls(
            ffmpeg=ffmpeg,
            ffprobe=ffprobe,
            event_bus=event_bus,
            output_dir=config.general.output_dir,
            max_jobs=config.general.max_jobs,
            padding_tolerance=config.general.padding_tolerance
        )

    def __enter__(self) -> "JobManager":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True)

    # Caller API

    def create_job(self, config: PipelineConfig, streams: StreamOrder) -> str:
        """Validates, registers and starts a job. Returns without waiting."""
        strategy = select_strategy(config.mode, self.ffmpeg, self.ffprobe, self.event_bus, self.padding_tolerance)
        strategy.validate(streams)

        job_id = str(uuid.uuid4())
        job = Job(id=job_id, config=config, streams=streams)
        with self._lock:
            self._jobs[job_id] = job
            self._futures[job_id] = self._executor.submit(self._run_job, job_id, strategy, config, streams)

        logger.info(
            f"Job {job_id} accepted: mode={config.mode.value}, "
            f"streams A={len(streams.a)} B={len(streams.b)}, crf={config.crf}, preset={config.preset.value}"
        )
        return job_id

    def get_status(self, job_id: str) -> JobSnapshot:
        with self._lock:
            job = self._get(job_id)
            return JobSnapshot(
                id=job.id,
                status=job.status,
                progress=job.progress,
                error_message=job.error_message
            )

    def get_output_path(self, job_id: str) -> Path:
        with self._lock:
            job = self._get(job_id)
            if job.status is not JobStatus.DONE:
                raise JobNotReady(job_id, job.status.value)
            return job.output_path

    def wait(self, job_id: str, timeout: Optional[float] = None) -> JobSnapshot:
        """Blocks until the job is terminal or the timeout expires."""
        with self._lock:
            self._get(job_id)
            future = self._futures[job_id]
        concurrent.futures.wait([future], timeout=timeout)
        return self.get_status(job_id)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    # Mutators used by the running pipeline

    def record_progress(self, job_id: str, percent: int):
        value = max(0, min(100, int(percent)))
        with self._lock:
            job = self._get(job_id)
            if job.status.is_terminal:
                logger.debug(f"Ignoring progress {value} for finished job {job_id}")
                return
            # Progress never moves backwards
            if value <= job.progress:
                return
            job.progress = value
        self.event_bus.publish(JobProgressUpdated(job_id=job_id, progress_percent=value))

    def complete(self, job_id: str, output_path: Path):
        with self._lock:
            job = self._get(job_id)
            if job.status.is_terminal:
                logger.warning(f"Job {job_id} already {job.status.value}, ignoring completion")
                return
            job.status = JobStatus.DONE
            job.progress = 100
            job.output_path = output_path
        logger.info(f"Job {job_id} completed: {output_path}")
        self.event_bus.publish(JobCompleted(job_id=job_id, output_path=output_path))

    def fail(self, job_id: str, message: str):
        with self._lock:
            job = self._get(job_id)
            if job.status.is_terminal:
                logger.warning(f"Job {job_id} already {job.status.value}, ignoring failure: {message}")
                return
            job.status = JobStatus.ERROR
            job.error_message = message
        logger.error(f"Job {job_id} failed: {message}")
        self.event_bus.publish(JobFailed(job_id=job_id, error_message=message))

    # Internals

    def _get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def _run_job(self, job_id: str, strategy: PipelineStrategy, config: PipelineConfig, streams: StreamOrder):
        self.event_bus.publish(JobStarted(job_id=job_id, mode=strategy.mode.value))
        work_dir = self.output_dir / job_id
        try:
            work_dir.mkdir(parents=True, exist_ok=True)
            output = strategy.run(
                job_id, config, streams, work_dir,
                lambda percent: self.record_progress(job_id, percent)
            )
        except Exception as e:
            logger.exception(f"Exception processing job {job_id}")
            self.fail(job_id, str(e))
        else:
            self.complete(job_id, output)
