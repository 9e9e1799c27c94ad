"""
Google Meet Recording Coordinator.

Owns the three capture pipelines (audio, video, speaker events) for one
session and sequences their lifecycle:
- Setup: pick a writable output root, build the session-unique directory
- Init: sequential, the first failure aborts everything
- Start: concurrent fan-out, every failure reported with its pipeline name
- Monitor: the watchdog plus a 1 s poll of the page's "resolved" flag
- Teardown: stop every pipeline independently, then persist the artifacts
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from meet_recorder.errors import (
    PageClosedError,
    PipelineInitError,
    PipelineStartError,
    WatchdogTimeout,
)
from meet_recorder.models import RecordingArtifact
from meet_recorder.paths import (
    build_recording_id,
    describe_directory,
    prepare_recording_dir,
    select_recordings_root,
)
from meet_recorder.pipelines import (
    AudioPipeline,
    CapturePipeline,
    SpeakerEventPipeline,
    VideoPipeline,
)
from meet_recorder.session import SessionContext
from meet_recorder.speaker_detector import SpeakerActivityDetector
from meet_recorder.watchdog import AutomaticLeaveWatchdog

logger = logging.getLogger(__name__)

# Page-side "resolved" flag: set when the page unloads or is hidden
MONITOR_SCRIPT = """
() => {
    if (window.__meetRecorderMonitorInstalled) return false;
    window.__meetRecorderMonitorInstalled = true;
    window.__meetRecorderResolved = null;
    window.addEventListener('beforeunload', () => {
        console.log('[MeetRecorder] Page is unloading. Stopping recorder...');
        window.__meetRecorderResolved = 'page_unloading';
    });
    document.addEventListener('visibilitychange', () => {
        if (document.visibilityState === 'hidden') {
            console.log('[MeetRecorder] Document is hidden. Stopping recorder...');
            window.__meetRecorderResolved = 'document_hidden';
        }
    });
    return true;
}
"""

STATUS_SCRIPT = "() => window.__meetRecorderResolved || null"


class RecordingPipelineCoordinator:
    """Drives the capture pipelines of one session.

    Args:
        session: Shared session context (config, page channel, state)
        pipelines: Pipelines in init order; defaults to audio, video, speaker
        watchdog: Automatic-leave watchdog; defaults to one fed by the detector
    """

    STATUS_INTERVAL_SECONDS = 1.0

    def __init__(
        self,
        session: SessionContext,
        pipelines: Optional[list[CapturePipeline]] = None,
        watchdog: Optional[AutomaticLeaveWatchdog] = None,
    ):
        self.session = session
        config = session.config

        self.detector: Optional[SpeakerActivityDetector] = None
        if pipelines is None:
            self.detector = SpeakerActivityDetector(
                session.channel,
                bot_name=config.bot_name,
                presence_mode=config.recording.presence_mode,
            )
            pipelines = [
                AudioPipeline(
                    session.channel,
                    source_retry_attempts=config.recording.source_retry_attempts,
                    source_retry_delay_seconds=config.recording.source_retry_delay_seconds,
                    settle_seconds=config.recording.media_settle_seconds,
                ),
                VideoPipeline(session.channel),
                SpeakerEventPipeline(self.detector),
            ]
        else:
            for pipeline in pipelines:
                if isinstance(pipeline, SpeakerEventPipeline):
                    self.detector = pipeline.detector
        self.pipelines = pipelines

        if watchdog is None:
            if self.detector is None:
                raise ValueError("A watchdog is required when no speaker pipeline is configured")
            watchdog = AutomaticLeaveWatchdog(
                self.detector.get_active_participants_count,
                session.state,
                startup_alone_timeout_seconds=config.automatic_leave.startup_alone_timeout_seconds,
                everyone_left_timeout_seconds=config.automatic_leave.everyone_left_timeout_seconds,
            )
        self.watchdog = watchdog

        self.recording_id: Optional[str] = None
        self.recording_dir: Optional[Path] = None
        self.artifacts: list[RecordingArtifact] = []
        self.end_reason: Optional[str] = None
        self._started: list[CapturePipeline] = []
        self._stop_requested = asyncio.Event()
        self._teardown_task: Optional[asyncio.Future] = None

    # ==================== Lifecycle steps ====================

    def setup(self) -> Path:
        """Pick the output root and create the session directory."""
        config = self.session.config
        self.recording_id = build_recording_id(config.meeting_id)
        root = select_recordings_root(config.recording.preferred_dir)
        self.recording_dir = prepare_recording_dir(root, self.recording_id)

        logger.info(f"[Recording Setup] Meeting ID: {config.meeting_id}, Recording ID: {self.recording_id}")
        logger.info(f"[Recording Setup] Recording directory: {self.recording_dir.resolve()}")
        return self.recording_dir

    async def initialize_pipelines(self) -> None:
        """Initialize sequentially. The first failure stops the rest."""
        for pipeline in self.pipelines:
            logger.info(f"Initializing {pipeline.label.lower()} service...")
            try:
                await pipeline.initialize()
            except Exception as e:
                logger.error(f"Failed to initialize {pipeline.label.lower()} service: {e}")
                raise PipelineInitError(pipeline.name, pipeline.label, e) from e

    async def _start_one(self, pipeline: CapturePipeline) -> None:
        try:
            await pipeline.start()
        except Exception as e:
            logger.error(f"Failed to start {pipeline.label.lower()} service: {e}")
            raise PipelineStartError(pipeline.name, pipeline.label, e) from e
        self._started.append(pipeline)

    async def start_pipelines(self) -> None:
        """Start all pipelines concurrently; any failure fails the whole start."""
        logger.info("Starting all recording services...")
        results = await asyncio.gather(
            *(self._start_one(p) for p in self.pipelines), return_exceptions=True
        )

        failures: dict[str, BaseException] = {}
        first: Optional[PipelineStartError] = None
        for result in results:
            if isinstance(result, PipelineStartError):
                failures[result.pipeline] = result.cause
                first = first or result
            elif isinstance(result, BaseException):
                raise result

        if first is not None:
            logger.error(
                f"Failed to start {len(failures)} recording service(s): {', '.join(failures)}"
            )
            await self._stop_pipelines(list(self._started))
            self._started.clear()
            raise PipelineStartError(first.pipeline, first.label, first.cause, failures)

        logger.info(
            f"All recording services started successfully: {', '.join(p.name for p in self.pipelines)}"
        )

    async def install_monitor(self) -> None:
        await self.session.channel.call(MONITOR_SCRIPT)

    async def _status_loop(self) -> str:
        """Poll the page-side resolved flag until the session ends deliberately."""
        channel = self.session.channel
        while True:
            await asyncio.sleep(self.STATUS_INTERVAL_SECONDS)
            if channel.closed:
                return "page_closed"
            try:
                resolved = await channel.call(STATUS_SCRIPT)
            except PageClosedError:
                return "page_closed"
            except Exception as e:
                if channel.closed:
                    return "page_closed"
                logger.debug(f"Status check failed: {e}")
                continue
            if resolved:
                return str(resolved)

    async def _wait_for_end(self) -> Optional[WatchdogTimeout]:
        """Block until a terminal signal. Returns the timeout if the watchdog fired."""
        watchdog_task = asyncio.create_task(self.watchdog.run())
        status_task = asyncio.create_task(self._status_loop())
        stop_task = asyncio.create_task(self._stop_requested.wait())
        tasks = {watchdog_task, status_task, stop_task}

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if watchdog_task in done:
            error = watchdog_task.exception()
            if isinstance(error, WatchdogTimeout):
                self.end_reason = error.reason.value
                return error
            if error is not None:
                raise error

        if self._stop_requested.is_set():
            self.end_reason = "stop_requested"
        elif status_task in done:
            self.end_reason = status_task.result()
        else:
            self.end_reason = "watchdog_stopped"
        logger.info(f"Recording ended: {self.end_reason}")
        return None

    # ==================== Teardown ====================

    async def _stop_one(self, pipeline: CapturePipeline) -> None:
        try:
            await pipeline.stop()
        except Exception as e:
            logger.warning(f"Error stopping {pipeline.name} service: {e}")

    async def _stop_pipelines(self, pipelines: list[CapturePipeline]) -> None:
        await asyncio.gather(*(self._stop_one(p) for p in pipelines))

    async def _release(self, pipelines: list[CapturePipeline]) -> None:
        """Stop the given pipelines, then persist whatever they captured."""
        await self._stop_pipelines(pipelines)

        if self.recording_dir is None:
            return

        for pipeline in pipelines:
            try:
                artifact = await pipeline.persist(self.recording_dir)
            except Exception as e:
                logger.error(f"Error saving {pipeline.name} recording: {e}")
                continue
            if artifact is not None:
                self.artifacts.append(artifact)

        logger.info(f"Recording files saved to: {self.recording_dir.resolve()}")
        try:
            for name, size in describe_directory(self.recording_dir):
                logger.info(f"   - {name} ({size / 1024 / 1024:.2f} MB)")
        except OSError as e:
            logger.warning(f"Could not list files in directory: {e}")

    async def _teardown(self) -> list[RecordingArtifact]:
        self.watchdog.stop()
        started = list(self._started)
        self._started.clear()
        if started:
            await self._release(started)
        return self.artifacts

    async def _release_late_starts(self) -> list[RecordingArtifact]:
        """Release pipelines whose start completed after finalize() ran."""
        await self.finalize()
        late = list(self._started)
        self._started.clear()
        if late:
            logger.info(f"Stopping services that started after finalize: {', '.join(p.name for p in late)}")
            await self._release(late)
        return self.artifacts

    async def finalize(self) -> list[RecordingArtifact]:
        """Stop and persist exactly once; later callers wait for the same result."""
        if self._teardown_task is None:
            self._stop_requested.set()
            self._teardown_task = asyncio.ensure_future(self._teardown())
        return await asyncio.shield(self._teardown_task)

    # ==================== Entry point ====================

    async def start_google_recording(self) -> list[RecordingArtifact]:
        """Record until the session ends.

        Returns:
            Persisted artifacts, when the session ended deliberately

        Raises:
            PipelineInitError / PipelineStartError: nothing was recorded
            WatchdogTimeout: the bot was left alone (artifacts are persisted first)
        """
        logger.info("Starting Google Meet recording (audio, video, and speaker detection)")
        self.session.coordinator = self
        self.setup()

        await self.initialize_pipelines()
        await self.start_pipelines()

        if self._stop_requested.is_set():
            return await self._release_late_starts()

        await self.install_monitor()
        timeout = await self._wait_for_end()
        artifacts = await self.finalize()

        if timeout is not None:
            raise timeout
        return artifacts


async def start_google_recording(session: SessionContext) -> list[RecordingArtifact]:
    """Record the joined meeting on session.page until it ends."""
    coordinator = RecordingPipelineCoordinator(session)
    return await coordinator.start_google_recording()
