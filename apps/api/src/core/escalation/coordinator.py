"""Escalation coordinator.

Runs one escalation session at a time: tier 1 is notified immediately, then
each further tier after a fixed delay, until a dispatcher outcome reports no
higher tier, the last tier is reached, or the user cancels.

Each session is driven by a single asyncio task (the session actor) that owns
every mutable session field. ``activate`` and ``cancel`` are synchronous and
only start or cancel that task, so a cancelled timer can never fire: the
actor is either waiting on the tier delay when cancelled, or it never reaches
the next dispatcher call.
"""

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.config import settings
from src.core.escalation.capture import (
    CaptureDeviceError,
    CapturePermissionError,
    ContextCaptureBuffer,
)
from src.core.escalation.dispatcher_client import DispatcherClient, DispatcherError
from src.core.escalation.enums import SessionEndReason, SessionStatus
from src.core.escalation.models import (
    ConsentFlags,
    EscalationContext,
    GeoPosition,
)
from src.logging_config import correlation_id_ctx, get_logger
from src.models.trusted_contact import MIN_TIER
from src.schemas.panic_alert import PanicAlertRequest, PanicAlertResponse

logger = get_logger(__name__)


class GeolocationProvider(Protocol):
    """Device location source."""

    async def current_position(self) -> GeoPosition | None: ...


class EscalationListener:
    """Receives session events, typically to update the UI.

    Override what you need. Exceptions raised here are logged and never
    affect the escalation.
    """

    def on_tier_notified(
        self, session: "EscalationSession", outcome: PanicAlertResponse
    ) -> None:
        pass

    def on_progress(self, session: "EscalationSession", percent: float) -> None:
        pass

    def on_session_ended(self, session: "EscalationSession") -> None:
        pass


@dataclass
class EscalationSession:
    """One run of the escalation protocol."""

    tier_delay_seconds: float
    clock: Callable[[], float] = time.monotonic
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SessionStatus = SessionStatus.idle
    end_reason: SessionEndReason | None = None
    current_tier: int = 0
    # Monotonic start of the armed tier timer, None while no timer is armed
    tier_started_at: float | None = None
    tallies: dict[int, PanicAlertResponse] = field(default_factory=dict)
    context: EscalationContext | None = None
    timers_armed: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.idle, SessionStatus.tier_active)

    @property
    def timer_armed(self) -> bool:
        return self.tier_started_at is not None

    @property
    def contacts_reached(self) -> int:
        return sum(outcome.contacts_reached for outcome in self.tallies.values())

    def progress(self) -> float:
        """Elapsed share of the current tier delay, 0 to 100.

        Computed from the monotonic start so delayed ticks never drift.
        """
        if self.tier_started_at is None or not self.is_active:
            return 0.0
        if self.tier_delay_seconds <= 0:
            return 100.0
        elapsed = self.clock() - self.tier_started_at
        return max(0.0, min(100.0, elapsed / self.tier_delay_seconds * 100))


class EscalationCoordinator:
    """Drives escalation sessions for one signed-in user on one device."""

    def __init__(
        self,
        dispatcher: DispatcherClient,
        capture: ContextCaptureBuffer,
        user_id: uuid.UUID,
        user_name: str | None = None,
        user_email: str | None = None,
        geolocation: GeolocationProvider | None = None,
        listener: EscalationListener | None = None,
        tier_delay_seconds: float | None = None,
        max_tier: int | None = None,
        progress_interval_seconds: float | None = None,
        geolocation_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._dispatcher = dispatcher
        self._capture = capture
        self._user_id = user_id
        self._user_name = user_name
        self._user_email = user_email
        self._geolocation = geolocation
        self._listener = listener or EscalationListener()
        self._tier_delay = (
            settings.escalation_tier_delay_seconds
            if tier_delay_seconds is None
            else tier_delay_seconds
        )
        self._max_tier = max_tier or settings.escalation_max_tier
        self._progress_interval = (
            progress_interval_seconds or settings.escalation_progress_interval_seconds
        )
        self._geolocation_timeout = (
            geolocation_timeout_seconds or settings.geolocation_timeout_seconds
        )
        self._clock = clock

        self._session: EscalationSession | None = None
        self._task: asyncio.Task | None = None
        self._cleanup_tasks: set[asyncio.Task] = set()

    @property
    def session(self) -> EscalationSession | None:
        """The current or most recently finished session."""
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.is_active

    async def open_trigger(self, consent: ConsentFlags) -> bool:
        """Start buffering ambient audio when the trigger dialog opens.

        Returns:
            True if audio is being buffered.
        """
        if not consent.audio or self.is_active:
            return False
        return await self._capture.start_audio_capture()

    async def dismiss_trigger(self) -> None:
        """Release the microphone when the dialog closes without activation."""
        if not self.is_active:
            await self._capture.stop_audio_capture(discard=True)

    def activate(
        self,
        message: str | None = None,
        consent: ConsentFlags | None = None,
    ) -> EscalationSession | None:
        """Start a session and notify tier 1.

        Must be called from within the running event loop.

        Returns:
            The new session, or None if one is already active.
        """
        if self.is_active:
            logger.info(
                "Escalation already active, ignoring activation",
                session_id=self._session.id,
            )
            return None

        consent = consent or ConsentFlags()
        session = EscalationSession(tier_delay_seconds=self._tier_delay, clock=self._clock)
        session.status = SessionStatus.tier_active
        session.current_tier = MIN_TIER
        self._session = session
        self._task = asyncio.get_running_loop().create_task(
            self._run_session(session, message, consent),
            name=f"escalation-{session.id}",
        )

        logger.info(
            "Escalation activated",
            session_id=session.id,
            consent_location=consent.location,
            consent_audio=consent.audio,
            consent_photo=consent.photo,
        )
        return session

    def cancel(self) -> bool:
        """Stop the active session ("I'm safe").

        Takes effect before returning: the session is cancelled, its timer
        and progress ticker are torn down with the actor task, and capture
        hardware is released.

        Returns:
            False if no session was active.
        """
        session = self._session
        if session is None or not session.is_active:
            return False

        self._finish(session, SessionStatus.cancelled, SessionEndReason.user_cancelled)
        if self._task is not None:
            self._task.cancel()

        cleanup = asyncio.get_running_loop().create_task(
            self._capture.stop_audio_capture(discard=True)
        )
        self._cleanup_tasks.add(cleanup)
        cleanup.add_done_callback(self._cleanup_tasks.discard)
        return True

    async def join(self) -> EscalationSession | None:
        """Wait until the current session and its cleanup have finished."""
        pending = [task for task in (self._task, *self._cleanup_tasks) if task is not None]
        if pending:
            await asyncio.wait(pending)
        return self._session

    async def _run_session(
        self,
        session: EscalationSession,
        message: str | None,
        consent: ConsentFlags,
    ) -> None:
        token = correlation_id_ctx.set(session.id)
        try:
            session.context = await self._capture_context(message, consent)
            logger.info(
                "Escalation context captured",
                captured=session.context.captured_fields(),
            )

            tier = MIN_TIER
            while True:
                outcome = await self._notify_tier(session, tier)
                if outcome is None:
                    return
                if not outcome.next_tiers_available or tier >= self._max_tier:
                    self._finish(
                        session, SessionStatus.exhausted, SessionEndReason.tiers_exhausted
                    )
                    return

                await self._wait_for_next_tier(session)
                tier += 1
        except asyncio.CancelledError:
            logger.info("Escalation session task cancelled", tier=session.current_tier)
            raise
        except Exception:
            logger.exception("Escalation session failed", tier=session.current_tier)
            self._finish(session, SessionStatus.exhausted, SessionEndReason.dispatch_failed)
        finally:
            await self._capture.stop_audio_capture(discard=True)
            correlation_id_ctx.reset(token)

    async def _capture_context(
        self, message: str | None, consent: ConsentFlags
    ) -> EscalationContext:
        locate = self._locate() if consent.location else _none()
        if consent.audio or consent.photo:
            collect = self._capture.capture_all_media(audio=consent.audio, photo=consent.photo)
        else:
            collect = _none()
        position, media = await asyncio.gather(locate, collect, return_exceptions=True)
        if isinstance(position, BaseException):
            logger.error(
                "Location lookup crashed, alerting without it",
                error_type=type(position).__name__,
            )
            position = None
        if isinstance(media, BaseException):
            logger.error(
                "Media capture crashed, alerting without it",
                error_type=type(media).__name__,
            )
            media = None
        # The clip is in the context now; drop the microphone and its buffer
        await self._capture.stop_audio_capture(discard=True)
        return EscalationContext.from_capture(message, position, media)

    async def _locate(self) -> GeoPosition | None:
        if self._geolocation is None:
            return None
        try:
            return await asyncio.wait_for(
                self._geolocation.current_position(),
                timeout=self._geolocation_timeout,
            )
        except CapturePermissionError:
            logger.info("Location permission denied, continuing without location")
        except CaptureDeviceError:
            logger.warning("Location unavailable", exc_info=True)
        except TimeoutError:
            logger.warning(
                "Location timed out", timeout_seconds=self._geolocation_timeout
            )
        except Exception:
            logger.exception("Location lookup failed, continuing without location")
        return None

    async def _notify_tier(
        self, session: EscalationSession, tier: int
    ) -> PanicAlertResponse | None:
        """Ask the dispatcher to notify one tier.

        Returns:
            The outcome, or None if the session ended here.
        """
        if not session.is_active:
            return None

        session.current_tier = tier
        request = PanicAlertRequest(
            user_id=self._user_id,
            user_name=self._user_name,
            user_email=self._user_email,
            tier=tier,
            **session.context.model_dump(),
        )

        try:
            outcome = await self._dispatcher.notify_tier(request, correlation_id=session.id)
        except DispatcherError:
            logger.warning("Dispatcher call failed, ending escalation", tier=tier, exc_info=True)
            self._finish(session, SessionStatus.exhausted, SessionEndReason.dispatch_failed)
            return None

        if not outcome.success:
            logger.warning("No trusted contacts configured", tier=tier)
            self._finish(session, SessionStatus.exhausted, SessionEndReason.no_contacts)
            return None

        session.tallies[tier] = outcome
        logger.info(
            "Tier notified",
            tier=tier,
            contacts_in_tier=outcome.contacts_in_tier,
            contacts_reached=outcome.contacts_reached,
            next_tiers_available=outcome.next_tiers_available,
        )
        self._emit(self._listener.on_tier_notified, session, outcome)
        return outcome

    async def _wait_for_next_tier(self, session: EscalationSession) -> None:
        session.tier_started_at = self._clock()
        session.timers_armed += 1
        ticker = asyncio.create_task(self._tick_progress(session))
        try:
            await asyncio.sleep(self._tier_delay)
        finally:
            ticker.cancel()
            session.tier_started_at = None

    async def _tick_progress(self, session: EscalationSession) -> None:
        while True:
            self._emit(self._listener.on_progress, session, session.progress())
            await asyncio.sleep(self._progress_interval)

    def _finish(
        self,
        session: EscalationSession,
        status: SessionStatus,
        reason: SessionEndReason,
    ) -> None:
        if not session.is_active:
            return
        session.status = status
        session.end_reason = reason
        session.tier_started_at = None
        logger.info(
            "Escalation ended",
            session_id=session.id,
            status=status.value,
            reason=reason.value,
            tier=session.current_tier,
            contacts_reached=session.contacts_reached,
        )
        self._emit(self._listener.on_session_ended, session)

    def _emit(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Escalation listener failed", callback=callback.__name__)


async def _none() -> None:
    return None
