"""Panic alert router.

The dispatcher endpoint called by the device once per escalation tier.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.core.auth import CurrentUser
from src.database import get_db
from src.logging_config import get_logger
from src.middleware.rate_limit import limiter
from src.schemas.panic_alert import PanicAlertRequest, PanicAlertResponse
from src.services.contact_store import ContactStoreError
from src.services.delivery_dispatcher import NoTrustedContactsError, notify_tier

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["panic-alert"])


@router.post(
    "/panic-alert",
    response_model=PanicAlertResponse,
    responses={
        status.HTTP_403_FORBIDDEN: {"description": "userId does not match caller"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Contact store unreachable"},
    },
)
@limiter.limit(settings.panic_alert_rate_limit)
async def send_panic_alert(
    request: Request,
    body: PanicAlertRequest,
    user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> PanicAlertResponse | JSONResponse:
    """Notify every trusted contact in one tier.

    Returns per-channel counts and whether a higher tier still has contacts.
    When the user has no trusted contacts at all the response is
    ``{"success": false, "message": ...}`` with status 200, so the caller
    can tell it apart from an empty tier.
    """
    if body.user_id != user.id:
        logger.warning(
            "Panic alert userId does not match authenticated user",
            user_id=str(user.id),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot send alerts on behalf of another user",
        )

    logger.info(
        "Processing panic alert",
        user_id=str(user.id),
        tier=body.tier,
        has_message=body.message is not None,
        has_location=body.location is not None,
        has_audio=body.audio_base64 is not None,
        has_photo=body.image_base64 is not None,
    )

    try:
        outcome = await notify_tier(db, user, body)
    except NoTrustedContactsError as exc:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"success": False, "message": exc.message},
        )
    except ContactStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return PanicAlertResponse(
        success=True,
        tier=outcome.tier,
        next_tiers_available=outcome.next_tiers_available,
        email_success_count=outcome.email_success_count,
        email_failed_count=outcome.email_failed_count,
        sms_success_count=outcome.sms_success_count,
        sms_failed_count=outcome.sms_failed_count,
        contacts_in_tier=outcome.contacts_in_tier,
        contacts_reached=outcome.contacts_reached,
        sms_channel_available=outcome.sms_channel_available,
    )
