from dataclasses import dataclass
from typing import Optional
from sqlalchemy.orm import Session
from app.core.exceptions import NotFoundError
from app.repositories.event_repository import EventRepository


@dataclass(frozen=True)
class CapacityStatus:
    full: bool
    capacity: Optional[int]
    registered: int

    @property
    def unlimited(self) -> bool:
        return self.capacity is None

    @property
    def free_slots(self) -> Optional[int]:
        if self.capacity is None:
            return None
        return max(self.capacity - self.registered, 0)


class CapacityService:
    """
    Decides whether an event has free slots.

    A NULL capacity means the event is unlimited: it is never full and the
    waitlist does not apply. Any integer capacity, zero included, is compared
    against the number of confirmed sign-ups as is.
    """

    def __init__(self, db: Session):
        self.event_repo = EventRepository(db)

    def is_full(self, event_id: str) -> CapacityStatus:
        event = self.event_repo.get_by_id(event_id)
        if not event:
            raise NotFoundError("Event not found")

        registered = self.event_repo.count_registered(event_id)
        capacity = event.capacity
        full = capacity is not None and registered >= capacity

        return CapacityStatus(full=full, capacity=capacity, registered=registered)
