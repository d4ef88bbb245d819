"""Device-side client for the panic alert dispatcher endpoint."""

from typing import Protocol

import httpx

from src.config import settings
from src.logging_config import get_logger
from src.middleware.correlation import CORRELATION_ID_HEADER
from src.schemas.panic_alert import PanicAlertRequest, PanicAlertResponse

logger = get_logger(__name__)


class DispatcherError(Exception):
    """The dispatcher could not be reached or answered with garbage."""


class DispatcherClient(Protocol):
    """Anything that can ask the dispatcher to notify one tier."""

    async def notify_tier(
        self, request: PanicAlertRequest, correlation_id: str
    ) -> PanicAlertResponse: ...


class HttpDispatcherClient:
    """Calls ``POST /api/panic-alert`` over HTTP.

    The escalation session ID travels as the correlation ID, so server logs
    for every tier of one session share it.
    """

    def __init__(
        self,
        access_token: str,
        url: str | None = None,
        timeout: float | None = None,
    ):
        self._access_token = access_token
        self._url = url or settings.dispatcher_url
        self._timeout = timeout or settings.dispatcher_timeout_seconds

    async def notify_tier(
        self, request: PanicAlertRequest, correlation_id: str
    ) -> PanicAlertResponse:
        """Send one tier request.

        Raises:
            DispatcherError: On transport failure, non-2xx status, or a body
                that is not a valid dispatcher response.
        """
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            CORRELATION_ID_HEADER: correlation_id,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise DispatcherError(f"Dispatcher unreachable: {e}") from e

        if not response.is_success:
            logger.warning(
                "Dispatcher rejected tier request",
                tier=request.tier,
                status_code=response.status_code,
            )
            raise DispatcherError(f"Dispatcher returned HTTP {response.status_code}")

        try:
            return PanicAlertResponse.model_validate(response.json())
        except ValueError as e:
            raise DispatcherError("Malformed dispatcher response") from e
