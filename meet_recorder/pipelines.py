"""
Capture pipelines.

Three pipelines share one lifecycle (initialize, start, stop, persist):
- AudioPipeline: mixes the meeting's remote audio tracks and records them
- VideoPipeline: records the tab (getDisplayMedia) or a canvas composite of
  the visible video tiles when display capture is unavailable
- SpeakerEventPipeline: drives the SpeakerActivityDetector and writes its log

Audio and video run inside the page. Their buffers are flushed to disk by
transferring base64 through the page channel.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from meet_recorder.channel import PageChannel
from meet_recorder.errors import CaptureSourceError
from meet_recorder.models import ArtifactKind, RecordingArtifact, save_speaker_events
from meet_recorder.paths import AUDIO_FILENAME, SPEAKER_EVENTS_FILENAME, VIDEO_FILENAME
from meet_recorder.speaker_detector import SpeakerActivityDetector

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_fixed_delay(
    attempt: Callable[[], Awaitable[T]],
    accept: Callable[[T], bool],
    attempts: int,
    delay_seconds: float,
    what: str,
) -> T:
    """Run attempt() up to `attempts` times, sleeping a fixed delay between tries.

    Raises:
        CaptureSourceError: when no attempt produced an acceptable result
    """
    result: Optional[T] = None
    for i in range(1, attempts + 1):
        result = await attempt()
        if accept(result):
            logger.info(f"Found {what} after {i} attempt(s)")
            return result
        if i < attempts:
            logger.info(f"No {what} yet, retrying in {delay_seconds}s (attempt {i + 1}/{attempts})")
            await asyncio.sleep(delay_seconds)
    raise CaptureSourceError(f"No {what} found after {attempts} attempts (last result: {result})")


# Shared page helper: read a recorded Blob back as base64 (null when absent)
READ_BLOB_SCRIPT = """
(key) => new Promise((resolve) => {
    const blob = window[key];
    if (!blob) { resolve(null); return; }
    const reader = new FileReader();
    reader.onloadend = () => {
        const data = String(reader.result || '');
        resolve(data.includes(',') ? data.split(',')[1] : data);
    };
    reader.onerror = () => resolve(null);
    reader.readAsDataURL(blob);
})
"""

AUDIO_INIT_SCRIPT = """
() => {
    if (window.__meetRecorderAudio) return false;
    const chunks = [];
    let recorder = null;
    let context = null;

    function activeMediaElements() {
        return Array.from(document.querySelectorAll('audio, video')).filter(el =>
            !el.paused && el.srcObject instanceof MediaStream &&
            el.srcObject.getAudioTracks().length > 0);
    }

    window.__meetRecorderAudio = {
        countSources() { return activeMediaElements().length; },
        start() {
            const elements = activeMediaElements();
            if (elements.length === 0) {
                throw new Error('No active media elements found');
            }
            context = new AudioContext({ sampleRate: 16000 });
            const destination = context.createMediaStreamDestination();
            elements.forEach(el => context.createMediaStreamSource(el.srcObject).connect(destination));
            const mimeType = MediaRecorder.isTypeSupported('audio/webm') ? 'audio/webm'
                : MediaRecorder.isTypeSupported('audio/mp4') ? 'audio/mp4' : 'audio/webm';
            recorder = new MediaRecorder(destination.stream, { mimeType });
            chunks.length = 0;
            recorder.ondataavailable = (e) => { if (e.data.size > 0) chunks.push(e.data); };
            recorder.onerror = (e) => console.log('[MeetRecorder] Audio recording error: ' + ((e.error && e.error.message) || 'unknown'));
            recorder.start(1000);
            console.log('[MeetRecorder] Audio recording started from ' + elements.length + ' element(s)');
            return elements.length;
        },
        stop() {
            return new Promise((resolve) => {
                const finish = () => {
                    if (context) { context.close().catch(() => {}); context = null; }
                    if (chunks.length > 0) {
                        window.__meetRecorderAudioBlob = new Blob(chunks, { type: (recorder && recorder.mimeType) || 'audio/webm' });
                    }
                    resolve(chunks.length);
                };
                if (recorder && recorder.state !== 'inactive') {
                    recorder.onstop = finish;
                    recorder.stop();
                } else {
                    finish();
                }
            });
        },
    };
    return true;
}
"""

VIDEO_INIT_SCRIPT = """
() => {
    if (window.__meetRecorderVideo) return false;
    const chunks = [];
    let recorder = null;
    let stream = null;
    let frameTimer = null;

    function canvasStream() {
        const canvas = document.createElement('canvas');
        canvas.width = window.innerWidth || 1920;
        canvas.height = window.innerHeight || 1080;
        const ctx = canvas.getContext('2d', { alpha: false });
        if (!ctx) throw new Error('Failed to create canvas context');
        const draw = () => {
            ctx.fillStyle = '#000000';
            ctx.fillRect(0, 0, canvas.width, canvas.height);
            document.querySelectorAll('video').forEach(v => {
                if (v.readyState < 2 || v.paused || !v.videoWidth) return;
                const r = v.getBoundingClientRect();
                if (r.width <= 0 || r.height <= 0) return;
                try { ctx.drawImage(v, r.left, r.top, r.width, r.height); } catch (e) {}
            });
        };
        frameTimer = setInterval(draw, 1000 / 30);
        console.log('[MeetRecorder] Video capture using canvas composite ' + canvas.width + 'x' + canvas.height);
        return canvas.captureStream(30);
    }

    async function captureStream() {
        try {
            if (!navigator.mediaDevices || !navigator.mediaDevices.getDisplayMedia) {
                throw new Error('getDisplayMedia API not available');
            }
            const display = await navigator.mediaDevices.getDisplayMedia({
                video: { displaySurface: 'browser', frameRate: { ideal: 30 } }, audio: false });
            if (display.getVideoTracks().length === 0) throw new Error('No video tracks in display stream');
            return new MediaStream(display.getVideoTracks());
        } catch (e) {
            console.log('[MeetRecorder] getDisplayMedia failed (' + e.message + '), falling back to canvas');
            return canvasStream();
        }
    }

    window.__meetRecorderVideo = {
        countSources() {
            return Array.from(document.querySelectorAll('video')).filter(v =>
                v.srcObject instanceof MediaStream && v.srcObject.getVideoTracks().length > 0).length;
        },
        async start() {
            stream = await captureStream();
            const mimeType = MediaRecorder.isTypeSupported('video/webm;codecs=vp9')
                ? 'video/webm;codecs=vp9' : 'video/webm';
            recorder = new MediaRecorder(stream, { mimeType, videoBitsPerSecond: 2500000 });
            chunks.length = 0;
            recorder.ondataavailable = (e) => { if (e.data.size > 0) chunks.push(e.data); };
            recorder.start(1000);
            console.log('[MeetRecorder] Video recording started');
            return true;
        },
        stop() {
            return new Promise((resolve) => {
                const finish = () => {
                    if (frameTimer !== null) { clearInterval(frameTimer); frameTimer = null; }
                    if (stream) { stream.getTracks().forEach(t => t.stop()); stream = null; }
                    if (chunks.length > 0) {
                        window.__meetRecorderVideoBlob = new Blob(chunks, { type: 'video/webm' });
                    }
                    resolve(chunks.length);
                };
                if (recorder && recorder.state !== 'inactive') {
                    recorder.onstop = finish;
                    recorder.stop();
                } else {
                    finish();
                }
            });
        },
    };
    return true;
}
"""


class CapturePipeline(ABC):
    """One capture pipeline owned by the recording coordinator."""

    name: str = ""
    label: str = ""

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the pipeline. Must not start capturing."""

    @abstractmethod
    async def start(self) -> None:
        """Begin capturing."""

    @abstractmethod
    async def stop(self) -> None:
        """Cooperative stop request. Never forcibly aborted."""

    @abstractmethod
    async def persist(self, directory: Path) -> Optional[RecordingArtifact]:
        """Write captured data under directory. Returns None if nothing was captured."""


class PageMediaPipeline(CapturePipeline):
    """Shared lifecycle for the page-side MediaRecorder pipelines."""

    kind: ArtifactKind
    filename: str = ""
    global_name: str = ""
    blob_name: str = ""
    init_script: str = ""

    def __init__(self, channel: PageChannel):
        self.channel = channel

    async def initialize(self) -> None:
        await self.channel.call(self.init_script)
        logger.info(f"{self.label} service initialized")

    async def start(self) -> None:
        await self.channel.call(f"() => window.{self.global_name}.start()")
        logger.info(f"{self.label} started")

    async def stop(self) -> None:
        chunks = await self.channel.call(f"() => window.{self.global_name}.stop()")
        logger.info(f"{self.label} stopped ({chunks or 0} chunks)")

    async def persist(self, directory: Path) -> Optional[RecordingArtifact]:
        data = await self.channel.call(READ_BLOB_SCRIPT, self.blob_name)
        if not data:
            logger.warning(f"No {self.name} data captured, skipping {self.filename}")
            return None

        path = directory / self.filename
        payload = base64.b64decode(data)
        path.write_bytes(payload)
        size = path.stat().st_size
        logger.info(f"Saved {self.name} to {path} ({size / 1024 / 1024:.2f} MB)")
        return RecordingArtifact(kind=self.kind, path=path, size_bytes=size)


class AudioPipeline(PageMediaPipeline):
    name = "audio"
    label = "Audio recording"
    kind = ArtifactKind.AUDIO
    filename = AUDIO_FILENAME
    global_name = "__meetRecorderAudio"
    blob_name = "__meetRecorderAudioBlob"
    init_script = AUDIO_INIT_SCRIPT

    def __init__(
        self,
        channel: PageChannel,
        source_retry_attempts: int = 10,
        source_retry_delay_seconds: float = 3.0,
        settle_seconds: float = 2.0,
    ):
        super().__init__(channel)
        self.source_retry_attempts = source_retry_attempts
        self.source_retry_delay_seconds = source_retry_delay_seconds
        self.settle_seconds = settle_seconds

    async def start(self) -> None:
        # Media elements appear a moment after admission
        if self.settle_seconds:
            await asyncio.sleep(self.settle_seconds)
        await retry_fixed_delay(
            lambda: self.channel.call(f"() => window.{self.global_name}.countSources()"),
            lambda count: bool(count),
            attempts=self.source_retry_attempts,
            delay_seconds=self.source_retry_delay_seconds,
            what="active media elements",
        )
        await super().start()


class VideoPipeline(PageMediaPipeline):
    name = "video"
    label = "Video recording"
    kind = ArtifactKind.VIDEO
    filename = VIDEO_FILENAME
    global_name = "__meetRecorderVideo"
    blob_name = "__meetRecorderVideoBlob"
    init_script = VIDEO_INIT_SCRIPT


class SpeakerEventPipeline(CapturePipeline):
    name = "speaker"
    label = "Speaker detection"

    def __init__(self, detector: SpeakerActivityDetector):
        self.detector = detector

    async def initialize(self) -> None:
        await self.detector.install()

    async def start(self) -> None:
        await self.detector.start()

    async def stop(self) -> None:
        await self.detector.stop()

    async def persist(self, directory: Path) -> Optional[RecordingArtifact]:
        return save_speaker_events(self.detector.events, directory / SPEAKER_EVENTS_FILENAME)
