"""Tests for the context capture buffer."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.core.escalation.capture import (
    AudioRingBuffer,
    CaptureDeviceError,
    CapturePermissionError,
    ContextCaptureBuffer,
)
from src.core.escalation.enums import CameraFacing


class FakeRecorder:
    """Microphone that yields ``limit`` numbered segments then blocks."""

    mime_type = "audio/ogg"

    def __init__(self, limit: int = 100, fail_after: int | None = None, deny: bool = False):
        self.limit = limit
        self.fail_after = fail_after
        self.deny = deny
        self.produced = 0
        self.opened = 0
        self.closed = 0
        self.exhausted = asyncio.Event()

    async def open(self) -> None:
        if self.deny:
            raise CapturePermissionError("microphone denied")
        self.opened += 1

    async def read_segment(self, duration: float) -> bytes:
        if self.fail_after is not None and self.produced >= self.fail_after:
            raise CaptureDeviceError("microphone unplugged")
        if self.produced >= self.limit:
            self.exhausted.set()
            await asyncio.Event().wait()
        await asyncio.sleep(0)
        self.produced += 1
        return f"[{self.produced}]".encode()

    async def close(self) -> None:
        self.closed += 1


class FakeCamera:
    def __init__(
        self,
        deny: bool = False,
        hang: bool = False,
        fail: bool = False,
        crash: Exception | None = None,
    ):
        self.deny = deny
        self.crash = crash
        self.hang = hang
        self.fail = fail
        self.facing: CameraFacing | None = None
        self.closed = 0

    async def open(self, facing: CameraFacing) -> None:
        if self.deny:
            raise CapturePermissionError("camera denied")
        if self.crash is not None:
            raise self.crash
        self.facing = facing

    async def grab_frame(self) -> bytes:
        if self.hang:
            await asyncio.sleep(10)
        if self.fail:
            raise CaptureDeviceError("no frame")
        return b"\xff\xd8jpeg"

    async def close(self) -> None:
        self.closed += 1


async def wait_for(condition, timeout: float = 1.0) -> None:
    async def _poll():
        while not condition():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class TestAudioRingBuffer:
    def test_evicts_oldest_when_full(self):
        ring = AudioRingBuffer(capacity=3)
        for segment in (b"a", b"b", b"c", b"d", b"e"):
            ring.append(segment)

        assert len(ring) == 3
        assert ring.snapshot() == b"cde"

    def test_empty_snapshot_is_none(self):
        assert AudioRingBuffer(capacity=2).snapshot() is None

    def test_zero_capacity_rejected(self):
        with pytest.raises(ValueError):
            AudioRingBuffer(capacity=0)


class TestAudioCapture:
    """Tests for start/stop and the buffered window."""

    @pytest.mark.asyncio
    async def test_buffer_keeps_most_recent_window(self):
        recorder = FakeRecorder(limit=10)
        capture = ContextCaptureBuffer(recorder=recorder, buffer_seconds=3, segment_seconds=1)

        assert await capture.start_audio_capture() is True
        await asyncio.wait_for(recorder.exhausted.wait(), 1)

        assert capture.buffered_segments == 3
        assert capture.get_buffered_audio() == b"[8][9][10]"
        # Reading does not stop capture
        assert capture.is_recording is True

        await capture.stop_audio_capture()
        assert capture.is_recording is False
        assert recorder.closed == 1

    @pytest.mark.asyncio
    async def test_start_while_recording_does_not_reopen(self):
        recorder = FakeRecorder(limit=1)
        capture = ContextCaptureBuffer(recorder=recorder)

        assert await capture.start_audio_capture() is True
        assert await capture.start_audio_capture() is True

        assert recorder.opened == 1
        await capture.stop_audio_capture()

    @pytest.mark.asyncio
    async def test_permission_denied_returns_false(self):
        capture = ContextCaptureBuffer(recorder=FakeRecorder(deny=True))

        assert await capture.start_audio_capture() is False
        assert capture.has_audio_permission is False
        assert capture.get_buffered_audio() is None

    @pytest.mark.asyncio
    async def test_no_recorder_returns_false(self):
        assert await ContextCaptureBuffer().start_audio_capture() is False

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        recorder = FakeRecorder(limit=2)
        capture = ContextCaptureBuffer(recorder=recorder)
        await capture.start_audio_capture()

        await capture.stop_audio_capture()
        await capture.stop_audio_capture()

        assert recorder.closed == 1

    @pytest.mark.asyncio
    async def test_concurrent_stops_close_once(self):
        recorder = FakeRecorder(limit=2)
        capture = ContextCaptureBuffer(recorder=recorder)
        await capture.start_audio_capture()

        await asyncio.gather(capture.stop_audio_capture(), capture.stop_audio_capture())

        assert recorder.closed == 1

    @pytest.mark.asyncio
    async def test_device_failure_keeps_buffer_and_releases(self):
        recorder = FakeRecorder(fail_after=2)
        capture = ContextCaptureBuffer(recorder=recorder, buffer_seconds=5)

        await capture.start_audio_capture()
        await wait_for(lambda: not capture.is_recording)

        assert capture.get_buffered_audio() == b"[1][2]"
        assert recorder.closed == 1

        await capture.stop_audio_capture()
        assert recorder.closed == 1

    @pytest.mark.asyncio
    async def test_unexpected_recorder_error_releases_microphone(self):
        recorder = FakeRecorder(limit=2)
        recorder.read_segment = AsyncMock(side_effect=[b"[1]", RuntimeError("driver bug")])
        capture = ContextCaptureBuffer(recorder=recorder, buffer_seconds=5)

        await capture.start_audio_capture()
        await wait_for(lambda: not capture.is_recording)

        assert capture.get_buffered_audio() == b"[1]"
        assert recorder.closed == 1

    @pytest.mark.asyncio
    async def test_stop_keeps_buffer_unless_discarded(self):
        recorder = FakeRecorder(limit=2)
        capture = ContextCaptureBuffer(recorder=recorder, buffer_seconds=5)
        await capture.start_audio_capture()
        await asyncio.wait_for(recorder.exhausted.wait(), 1)

        await capture.stop_audio_capture()
        assert capture.get_buffered_audio() == b"[1][2]"

        await capture.stop_audio_capture(discard=True)
        assert capture.get_buffered_audio() is None
        assert capture.buffered_segments == 0
        assert recorder.closed == 1


class TestPhotoCapture:
    """Tests for capture_photo."""

    @pytest.mark.asyncio
    async def test_captures_rear_camera_after_settle(self):
        camera = FakeCamera()
        sleep = AsyncMock()
        capture = ContextCaptureBuffer(camera=camera, settle_seconds=0.5, sleep=sleep)

        photo = await capture.capture_photo()

        assert photo == b"\xff\xd8jpeg"
        assert camera.facing == CameraFacing.environment
        sleep.assert_awaited_once_with(0.5)
        assert camera.closed == 1
        assert capture.has_camera_permission is True

    @pytest.mark.asyncio
    async def test_permission_denied_returns_none(self):
        camera = FakeCamera(deny=True)
        capture = ContextCaptureBuffer(camera=camera, settle_seconds=0)

        assert await capture.capture_photo() is None
        assert capture.has_camera_permission is False
        assert camera.closed == 1

    @pytest.mark.asyncio
    async def test_device_failure_releases_camera(self):
        camera = FakeCamera(fail=True)
        capture = ContextCaptureBuffer(camera=camera, settle_seconds=0)

        assert await capture.capture_photo() is None
        assert camera.closed == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [OSError("camera busy"), RuntimeError("driver bug")])
    async def test_unexpected_camera_error_returns_none(self, error):
        camera = FakeCamera(crash=error)
        capture = ContextCaptureBuffer(camera=camera, settle_seconds=0)

        assert await capture.capture_photo() is None
        assert camera.closed == 1

    @pytest.mark.asyncio
    async def test_timeout_releases_camera(self):
        camera = FakeCamera(hang=True)
        capture = ContextCaptureBuffer(
            camera=camera, settle_seconds=0, photo_timeout_seconds=0.05
        )

        assert await capture.capture_photo() is None
        assert camera.closed == 1

    @pytest.mark.asyncio
    async def test_no_camera_returns_none(self):
        assert await ContextCaptureBuffer().capture_photo() is None


class TestCaptureAllMedia:
    @pytest.mark.asyncio
    async def test_partial_results_are_valid(self):
        recorder = FakeRecorder(limit=2)
        capture = ContextCaptureBuffer(
            recorder=recorder, camera=FakeCamera(deny=True), settle_seconds=0
        )
        await capture.start_audio_capture()
        await asyncio.wait_for(recorder.exhausted.wait(), 1)

        media = await capture.capture_all_media(audio=True, photo=True)

        assert media.audio == b"[1][2]"
        assert media.audio_mime_type == "audio/ogg"
        assert media.photo is None
        await capture.stop_audio_capture()

    @pytest.mark.asyncio
    async def test_only_requested_media_is_collected(self):
        camera = FakeCamera()
        capture = ContextCaptureBuffer(camera=camera, settle_seconds=0)

        media = await capture.capture_all_media(audio=True, photo=False)

        assert media.audio is None
        assert media.audio_mime_type is None
        assert media.photo is None
        assert camera.facing is None
