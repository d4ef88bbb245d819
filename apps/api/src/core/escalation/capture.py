"""Context capture buffer.

Keeps a rolling window of ambient audio while the trigger dialog is open and
grabs a single camera frame on activation. Capture is best effort: every
failure degrades to "not captured" and never blocks an alert.

Hardware is reached through the ``AudioRecorder`` and ``Camera`` interfaces,
supplied by the host platform. The buffer owns the devices exclusively while
capturing and releases them on every exit path.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Protocol

from src.config import settings
from src.core.escalation.enums import CameraFacing
from src.core.escalation.models import DEFAULT_AUDIO_MIME_TYPE, CapturedMedia
from src.logging_config import get_logger

logger = get_logger(__name__)


class CapturePermissionError(Exception):
    """The user or the OS refused access to the device."""


class CaptureDeviceError(Exception):
    """The device failed while opening, reading, or closing."""


class AudioRecorder(Protocol):
    """Microphone that yields fixed-length encoded segments."""

    mime_type: str

    async def open(self) -> None: ...

    async def read_segment(self, duration: float) -> bytes: ...

    async def close(self) -> None: ...


class Camera(Protocol):
    """Camera that yields one encoded (JPEG) frame at a time."""

    async def open(self, facing: CameraFacing) -> None: ...

    async def grab_frame(self) -> bytes: ...

    async def close(self) -> None: ...


class AudioRingBuffer:
    """Fixed-capacity buffer of encoded audio segments.

    Appending to a full buffer evicts the oldest segment, so memory stays
    bounded however long capture runs.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("Ring buffer capacity must be at least 1")
        self._segments: deque[bytes] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._segments.maxlen or 0

    def __len__(self) -> int:
        return len(self._segments)

    def append(self, segment: bytes) -> None:
        if segment:
            self._segments.append(segment)

    def clear(self) -> None:
        self._segments.clear()

    def snapshot(self) -> bytes | None:
        """Concatenate the buffered segments, oldest first."""
        if not self._segments:
            return None
        return b"".join(self._segments)


class ContextCaptureBuffer:
    """Ambient audio ring buffer plus one-shot photo capture."""

    def __init__(
        self,
        recorder: AudioRecorder | None = None,
        camera: Camera | None = None,
        buffer_seconds: int | None = None,
        segment_seconds: float | None = None,
        settle_seconds: float | None = None,
        photo_timeout_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._recorder = recorder
        self._camera = camera
        self._segment_seconds = segment_seconds or settings.audio_segment_seconds
        self._settle_seconds = (
            settings.photo_settle_seconds if settle_seconds is None else settle_seconds
        )
        self._photo_timeout = photo_timeout_seconds or settings.photo_capture_timeout_seconds
        self._sleep = sleep

        capacity = buffer_seconds or settings.audio_buffer_seconds
        self._buffer = AudioRingBuffer(max(1, round(capacity / self._segment_seconds)))

        self._record_task: asyncio.Task | None = None
        self._recorder_open = False
        self._camera_lock = asyncio.Lock()
        self._stop_lock = asyncio.Lock()

        # None until the first attempt, then the last observed answer
        self.has_audio_permission: bool | None = None
        self.has_camera_permission: bool | None = None

    @property
    def is_recording(self) -> bool:
        return self._record_task is not None and not self._record_task.done()

    @property
    def buffered_segments(self) -> int:
        return len(self._buffer)

    async def start_audio_capture(self) -> bool:
        """Open the microphone and start filling the ring buffer.

        Returns:
            True if recording (or already recording), False if the
            microphone is unavailable or permission was refused.
        """
        if self._recorder is None:
            return False
        if self.is_recording:
            return True

        try:
            await self._recorder.open()
        except CapturePermissionError:
            self.has_audio_permission = False
            logger.info("Microphone permission denied, continuing without audio")
            return False
        except CaptureDeviceError:
            logger.warning("Microphone unavailable", exc_info=True)
            await self._release_recorder(force=True)
            return False
        except Exception:
            logger.exception("Microphone failed to open")
            await self._release_recorder(force=True)
            return False

        self._recorder_open = True
        self.has_audio_permission = True
        self._buffer.clear()
        self._record_task = asyncio.create_task(self._record_loop())
        logger.info(
            "Audio capture started",
            buffer_segments=self._buffer.capacity,
            segment_seconds=self._segment_seconds,
        )
        return True

    async def _record_loop(self) -> None:
        try:
            while True:
                segment = await self._recorder.read_segment(self._segment_seconds)
                self._buffer.append(segment)
        except CaptureDeviceError:
            logger.warning(
                "Audio capture failed, keeping buffered audio",
                buffered_segments=len(self._buffer),
                exc_info=True,
            )
            await self._release_recorder()
        except Exception:
            logger.exception(
                "Audio recorder crashed, keeping buffered audio",
                buffered_segments=len(self._buffer),
            )
            await self._release_recorder()

    async def stop_audio_capture(self, discard: bool = False) -> None:
        """Stop recording and release the microphone. Safe to call repeatedly.

        With ``discard`` the buffered window is dropped as well, so a later
        alert cannot pick up audio from an earlier dialog.
        """
        async with self._stop_lock:
            task, self._record_task = self._record_task, None
            if task is not None and not task.done():
                task.cancel()
                await asyncio.wait([task])
            await self._release_recorder()
            if discard:
                self._buffer.clear()

    async def _release_recorder(self, force: bool = False) -> None:
        if not (self._recorder_open or force) or self._recorder is None:
            return
        self._recorder_open = False
        try:
            await self._recorder.close()
        except Exception:
            logger.warning("Failed to close microphone cleanly", exc_info=True)
        else:
            logger.info("Audio capture stopped")

    def get_buffered_audio(self) -> bytes | None:
        """Return the buffered window as one clip, or None if empty.

        Recording continues.
        """
        return self._buffer.snapshot()

    @property
    def audio_mime_type(self) -> str:
        if self._recorder is None:
            return DEFAULT_AUDIO_MIME_TYPE
        return getattr(self._recorder, "mime_type", None) or DEFAULT_AUDIO_MIME_TYPE

    async def capture_photo(
        self,
        facing: CameraFacing = CameraFacing.environment,
    ) -> bytes | None:
        """Grab one frame, releasing the camera straight after.

        Returns:
            The encoded frame, or None on permission denial, device failure,
            or timeout.
        """
        if self._camera is None:
            return None

        async with self._camera_lock:
            try:
                return await asyncio.wait_for(
                    self._grab_photo(facing), timeout=self._photo_timeout
                )
            except CapturePermissionError:
                self.has_camera_permission = False
                logger.info("Camera permission denied, continuing without photo")
            except CaptureDeviceError:
                logger.warning("Camera capture failed", exc_info=True)
            except TimeoutError:
                logger.warning(
                    "Camera capture timed out", timeout_seconds=self._photo_timeout
                )
            except Exception:
                logger.exception("Camera capture crashed, continuing without photo")
        return None

    async def _grab_photo(self, facing: CameraFacing) -> bytes | None:
        try:
            await self._camera.open(facing)
            self.has_camera_permission = True
            # Let exposure settle before grabbing
            await self._sleep(self._settle_seconds)
            frame = await self._camera.grab_frame()
        finally:
            await self._release_camera()

        logger.info("Photo captured", size_bytes=len(frame) if frame else 0)
        return frame or None

    async def _release_camera(self) -> None:
        try:
            await self._camera.close()
        except Exception:
            logger.warning("Failed to close camera cleanly", exc_info=True)

    async def capture_all_media(self, audio: bool, photo: bool) -> CapturedMedia:
        """Collect whichever requested media is available. Partial results are valid."""
        audio_clip = self.get_buffered_audio() if audio else None
        image = await self.capture_photo() if photo else None

        return CapturedMedia(
            audio=audio_clip,
            audio_mime_type=self.audio_mime_type if audio_clip else None,
            photo=image,
        )
