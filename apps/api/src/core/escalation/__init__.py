"""Device-side emergency escalation.

The coordinator runs the interactive panic flow on the user's device:

1. While the trigger dialog is open, ambient audio is buffered (with consent)
2. On activation, a context snapshot is taken: location, the buffered audio
   clip, and one photo, each only if consented and available
3. Tier 1 is notified immediately through the dispatcher endpoint
4. Every further tier is notified after a fixed delay, as long as the last
   dispatcher outcome reports a higher tier with contacts
5. "I'm safe" cancels immediately; no further tier is contacted

The same context is sent with every tier. A dispatcher failure ends the
session and the user is told to contact emergency services directly.
"""

from src.core.escalation.capture import (
    AudioRecorder,
    Camera,
    CaptureDeviceError,
    CapturePermissionError,
    ContextCaptureBuffer,
)
from src.core.escalation.coordinator import (
    EscalationCoordinator,
    EscalationListener,
    EscalationSession,
    GeolocationProvider,
)
from src.core.escalation.dispatcher_client import (
    DispatcherClient,
    DispatcherError,
    HttpDispatcherClient,
)
from src.core.escalation.enums import CameraFacing, SessionEndReason, SessionStatus
from src.core.escalation.models import (
    CapturedMedia,
    ConsentFlags,
    EscalationContext,
    GeoPosition,
)

__all__ = [
    "AudioRecorder",
    "Camera",
    "CameraFacing",
    "CaptureDeviceError",
    "CapturePermissionError",
    "CapturedMedia",
    "ConsentFlags",
    "ContextCaptureBuffer",
    "DispatcherClient",
    "DispatcherError",
    "EscalationContext",
    "EscalationCoordinator",
    "EscalationListener",
    "EscalationSession",
    "GeoPosition",
    "GeolocationProvider",
    "HttpDispatcherClient",
    "SessionEndReason",
    "SessionStatus",
]
