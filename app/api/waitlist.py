from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id, get_waitlist_service
from app.core.config import settings
from app.core.exceptions import ValidationError
from app.schemas.waitlist import (
    CancelWaitlistRequest,
    ClearExpiredRequest,
    EventActionRequest,
    MessageResponse,
    WaitlistEntryActionRequest,
    WaitlistListResponse,
    WaitlistStatusResponse,
)
from app.services.waitlist_service import WaitlistService

router = APIRouter(prefix="/api/waitlist", tags=["waitlist"])


def _require(value, name: str) -> str:
    if not value:
        raise ValidationError(f"Invalid request: {name} is required")
    return value


@router.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.post("/join", response_model=MessageResponse)
def join_waitlist(
    body: EventActionRequest,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    event_id = _require(body.eventId, "eventId")
    service.join(event_id, user_id)
    return MessageResponse(message="Successfully added to waitlist")


@router.post("/cancel", response_model=MessageResponse)
def cancel_waitlist(
    body: CancelWaitlistRequest,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    event_id = _require(body.eventId, "eventId")
    staff_override = service.cancel(event_id, user_id, target_user_id=body.userId)
    message = "User removed from waitlist" if staff_override else "Removed from waitlist"
    return MessageResponse(message=message)


@router.post("/accept", response_model=MessageResponse)
def accept_promotion(
    body: EventActionRequest,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    event_id = _require(body.eventId, "eventId")
    service.accept(event_id, user_id)
    return MessageResponse(message="Promotion accepted. You are signed up!")


@router.post("/unsign", response_model=MessageResponse)
def unsign_event(
    body: EventActionRequest,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    event_id = _require(body.eventId, "eventId")
    service.unsign(event_id, user_id)
    return MessageResponse(message="Un-signed successfully. Next user promoted if applicable.")


@router.post("/promote-manual", response_model=MessageResponse)
def manual_promote(
    body: WaitlistEntryActionRequest,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    entry = service.get_entry(_require(body.waitlistId, "waitlistId"))
    service.ensure_staff(entry.event_id, user_id)
    service.manual_promote(entry.id, actor_id=user_id)
    return MessageResponse(message="Manual promotion sent.")


@router.post("/revoke", response_model=MessageResponse)
def revoke_promotion(
    body: WaitlistEntryActionRequest,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    entry = service.get_entry(_require(body.waitlistId, "waitlistId"))
    service.ensure_staff(entry.event_id, user_id)
    service.revoke(entry.id, actor_id=user_id)
    return MessageResponse(message="Promotion revoked.")


@router.post("/clear-expired", response_model=MessageResponse)
def clear_expired_promotion(
    body: ClearExpiredRequest,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    waitlist_id = _require(body.waitlistId, "waitlistId")
    event_id = _require(body.eventId, "eventId")
    entry = service.get_entry(waitlist_id)
    service.ensure_staff(entry.event_id, user_id)
    service.clear_expired_and_promote(entry.id, event_id, actor_id=user_id)
    return MessageResponse(message="Expired promotion cleared. Next candidate promoted.")


@router.get("/{event_id}/me", response_model=WaitlistStatusResponse)
def get_my_waitlist_status(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    return WaitlistStatusResponse(eventId=event_id, status=service.get_status(event_id, user_id))


@router.get("/{event_id}", response_model=WaitlistListResponse)
def get_event_waitlist(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    service: WaitlistService = Depends(get_waitlist_service)
):
    service.ensure_staff(event_id, user_id)
    return WaitlistListResponse(eventId=event_id, waitlist=service.list_waitlist(event_id))
