from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional


class EventActionRequest(BaseModel):
    """Body of join/accept/unsign. The frontend sends either spelling of the event id."""
    eventId: Optional[str] = Field(None, validation_alias=AliasChoices("eventId", "event_id"))


class CancelWaitlistRequest(EventActionRequest):
    userId: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("userId", "user_id"),
        description="Staff only: remove this user instead of yourself"
    )


class WaitlistEntryActionRequest(BaseModel):
    waitlistId: Optional[str] = Field(None, validation_alias=AliasChoices("waitlistId", "waitlist_id"))


class ClearExpiredRequest(WaitlistEntryActionRequest):
    eventId: Optional[str] = Field(None, validation_alias=AliasChoices("eventId", "event_id"))


class WaitlistUserInfo(BaseModel):
    id: str
    name: str
    email: str


class WaitlistEntryResponse(BaseModel):
    id: str
    userId: str
    eventId: str
    joinedAt: Optional[str] = None
    status: str
    promotionOffered: bool
    promotionExpiresAt: Optional[str] = None
    promotedAt: Optional[str] = None
    position: Optional[int] = None
    user: Optional[WaitlistUserInfo] = None

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class WaitlistListResponse(BaseModel):
    success: bool = True
    eventId: str
    waitlist: list[WaitlistEntryResponse]


class WaitlistStatus(BaseModel):
    onWaitlist: bool
    entry: Optional[WaitlistEntryResponse] = None
    position: Optional[int] = None
    offerActive: bool
    offerExpired: bool
    secondsRemaining: Optional[int] = None


class WaitlistStatusResponse(BaseModel):
    success: bool = True
    eventId: str
    status: WaitlistStatus
