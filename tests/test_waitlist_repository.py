"""
Waitlist persistence layer tests.
"""
import pytest
from unittest.mock import patch
from datetime import timedelta
from sqlalchemy.exc import OperationalError
from app.core.exceptions import PersistenceError
from app.models.waitlist import WaitlistEntry, WaitlistStatus
from app.repositories.waitlist_repository import WaitlistRepository
from conftest import NOW


class TestAddEntry:

    def test_add_entry_creates_waiting_entry(self, db, sample_full_event, sample_student):
        repo = WaitlistRepository(db)

        entry = repo.add_entry(sample_full_event.id, sample_student.id, joined_at=NOW)

        assert entry.id
        assert entry.status == WaitlistStatus.WAITING
        assert entry.promotion_offered is False
        assert entry.promotion_expires_at is None
        assert entry.promoted_at is None
        assert entry.joined_at == NOW

    def test_add_entry_is_idempotent(self, db, sample_full_event, sample_student):
        repo = WaitlistRepository(db)

        first = repo.add_entry(sample_full_event.id, sample_student.id, joined_at=NOW)
        second = repo.add_entry(sample_full_event.id, sample_student.id, joined_at=NOW + timedelta(minutes=5))

        assert second.id == first.id
        assert second.joined_at == NOW
        assert db.query(WaitlistEntry).count() == 1

    def test_add_entry_wraps_storage_failure(self, db, sample_full_event, sample_student):
        repo = WaitlistRepository(db)

        with patch.object(db, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))):
            with pytest.raises(PersistenceError) as exc_info:
                repo.add_entry(sample_full_event.id, sample_student.id)

        assert exc_info.value.message == "Failed to add user to waitlist"


class TestLookups:

    def test_get_entry_and_get_by_id(self, db, sample_full_event, sample_student, make_entry):
        entry = make_entry(sample_full_event, sample_student)
        repo = WaitlistRepository(db)

        assert repo.get_entry(sample_full_event.id, sample_student.id).id == entry.id
        assert repo.get_by_id(entry.id).user_id == sample_student.id

    def test_missing_lookups_return_none(self, db, sample_full_event, sample_student):
        repo = WaitlistRepository(db)

        assert repo.get_entry(sample_full_event.id, sample_student.id) is None
        assert repo.get_by_id("does-not-exist") is None

    def test_list_for_event_is_fifo(self, db, sample_full_event, make_user, make_entry):
        late = make_entry(sample_full_event, make_user("Late"), joined_at=NOW - timedelta(minutes=1))
        early = make_entry(sample_full_event, make_user("Early"), joined_at=NOW - timedelta(minutes=30))
        middle = make_entry(sample_full_event, make_user("Middle"), joined_at=NOW - timedelta(minutes=10))

        ids = [e.id for e in WaitlistRepository(db).list_for_event(sample_full_event.id)]

        assert ids == [early.id, middle.id, late.id]

    def test_identical_timestamps_order_by_id(self, db, sample_full_event, make_user, make_entry):
        a = make_entry(sample_full_event, make_user("Twin A"), joined_at=NOW)
        b = make_entry(sample_full_event, make_user("Twin B"), joined_at=NOW)

        ids = [e.id for e in WaitlistRepository(db).list_for_event(sample_full_event.id)]

        assert ids == sorted([a.id, b.id])

    def test_list_for_event_with_users(self, db, sample_full_event, sample_student, make_entry):
        make_entry(sample_full_event, sample_student)

        entries = WaitlistRepository(db).list_for_event_with_users(sample_full_event.id)

        assert entries[0].to_dict(include_user=True)["user"]["email"] == sample_student.email


class TestRemoval:

    def test_remove_entry(self, db, sample_full_event, sample_student, make_entry):
        make_entry(sample_full_event, sample_student)
        repo = WaitlistRepository(db)

        assert repo.remove_entry(sample_full_event.id, sample_student.id) is True
        assert repo.get_entry(sample_full_event.id, sample_student.id) is None
        assert repo.remove_entry(sample_full_event.id, sample_student.id) is False

    def test_remove_by_id(self, db, sample_full_event, sample_student, make_entry):
        entry = make_entry(sample_full_event, sample_student)
        entry_id = entry.id
        repo = WaitlistRepository(db)

        assert repo.remove_by_id(entry_id) is True
        assert repo.get_by_id(entry_id) is None


class TestPromotionFields:

    def test_next_unoffered_candidate_skips_offered(self, db, sample_full_event, make_user, make_entry):
        make_entry(
            sample_full_event, make_user("Offered"),
            joined_at=NOW - timedelta(hours=3),
            status=WaitlistStatus.OFFERED,
            expires_at=NOW + timedelta(hours=1)
        )
        waiting = make_entry(sample_full_event, make_user("Waiting"), joined_at=NOW - timedelta(hours=2))

        candidate = WaitlistRepository(db).next_unoffered_candidate(sample_full_event.id)

        assert candidate.id == waiting.id

    def test_next_unoffered_candidate_none_when_empty(self, db, sample_full_event):
        assert WaitlistRepository(db).next_unoffered_candidate(sample_full_event.id) is None

    def test_mark_offered(self, db, sample_full_event, sample_student, make_entry):
        entry = make_entry(sample_full_event, sample_student)
        expires_at = NOW + timedelta(hours=2)

        offered = WaitlistRepository(db).mark_offered(entry.id, expires_at)

        assert offered.status == WaitlistStatus.OFFERED
        assert offered.promotion_offered is True
        assert offered.promotion_expires_at == expires_at
        assert offered.promoted_at is None

    def test_conditional_mark_offered_skips_non_waiting(self, db, sample_full_event, sample_student, make_entry):
        entry = make_entry(
            sample_full_event, sample_student,
            status=WaitlistStatus.OFFERED,
            expires_at=NOW + timedelta(minutes=30)
        )
        repo = WaitlistRepository(db)

        result = repo.mark_offered(entry.id, NOW + timedelta(hours=2), only_if_waiting=True)

        assert result is None
        assert repo.get_by_id(entry.id).promotion_expires_at == NOW + timedelta(minutes=30)

    def test_mark_accepted(self, db, sample_full_event, sample_student, make_entry):
        entry = make_entry(
            sample_full_event, sample_student,
            status=WaitlistStatus.OFFERED,
            expires_at=NOW + timedelta(hours=1)
        )

        accepted = WaitlistRepository(db).mark_accepted(entry.id, NOW)

        assert accepted.status == WaitlistStatus.ACCEPTED
        assert accepted.promoted_at == NOW
        assert accepted.promotion_expires_at is None
        assert accepted.promotion_offered is False

    def test_mark_accepted_requires_live_offer(self, db, sample_full_event, make_user, make_entry):
        waiting = make_entry(sample_full_event, make_user("Waiting"))
        expired = make_entry(
            sample_full_event, make_user("Expired"),
            status=WaitlistStatus.OFFERED,
            expires_at=NOW - timedelta(seconds=1)
        )
        repo = WaitlistRepository(db)

        assert repo.mark_accepted(waiting.id, NOW) is None
        assert repo.mark_accepted(expired.id, NOW) is None
        assert repo.get_by_id(expired.id).status == WaitlistStatus.OFFERED

    def test_clear_offer_returns_to_waiting(self, db, sample_full_event, sample_student, make_entry):
        entry = make_entry(
            sample_full_event, sample_student,
            status=WaitlistStatus.OFFERED,
            expires_at=NOW + timedelta(hours=1)
        )

        cleared = WaitlistRepository(db).clear_offer(entry.id)

        assert cleared.status == WaitlistStatus.WAITING
        assert cleared.promotion_expires_at is None
        assert cleared.promoted_at is None

    def test_update_of_missing_entry_returns_none(self, db):
        repo = WaitlistRepository(db)

        assert repo.mark_offered("missing", NOW) is None
        assert repo.mark_accepted("missing", NOW) is None
        assert repo.clear_offer("missing") is None


class TestExpiryQueries:

    def test_list_expired_offers_is_global(self, db, make_event, make_user, make_entry):
        event_a = make_event(capacity=1, registered=1)
        event_b = make_event(capacity=1, registered=1)
        expired_a = make_entry(event_a, make_user("A"), status=WaitlistStatus.OFFERED, expires_at=NOW - timedelta(minutes=5))
        expired_b = make_entry(event_b, make_user("B"), status=WaitlistStatus.OFFERED, expires_at=NOW - timedelta(minutes=1))
        make_entry(event_b, make_user("C"), status=WaitlistStatus.OFFERED, expires_at=NOW + timedelta(minutes=1))
        make_entry(event_b, make_user("D"))

        expired = WaitlistRepository(db).list_expired_offers(NOW)

        assert [e.id for e in expired] == [expired_a.id, expired_b.id]

    def test_active_offer_for(self, db, sample_full_event, make_user, make_entry):
        active_user = make_user("Active")
        expired_user = make_user("Expired")
        make_entry(sample_full_event, active_user, status=WaitlistStatus.OFFERED, expires_at=NOW + timedelta(minutes=1))
        make_entry(sample_full_event, expired_user, status=WaitlistStatus.OFFERED, expires_at=NOW - timedelta(minutes=1))
        repo = WaitlistRepository(db)

        assert repo.active_offer_for(sample_full_event.id, active_user.id, NOW) is not None
        assert repo.active_offer_for(sample_full_event.id, expired_user.id, NOW) is None
        assert repo.count_active_offers(sample_full_event.id, NOW) == 1

    def test_clear_expired_for_event(self, db, make_event, make_user, make_entry):
        event = make_event(capacity=1, registered=1)
        other_event = make_event(capacity=1, registered=1)
        expired = make_entry(event, make_user("A"), status=WaitlistStatus.OFFERED, expires_at=NOW - timedelta(minutes=5))
        expired_id = expired.id
        other = make_entry(other_event, make_user("B"), status=WaitlistStatus.OFFERED, expires_at=NOW - timedelta(minutes=5))
        other_id = other.id
        repo = WaitlistRepository(db)

        cleared = repo.clear_expired_for_event(event.id, NOW)

        assert [c["id"] for c in cleared] == [expired_id]
        assert repo.get_by_id(expired_id) is None
        assert repo.get_by_id(other_id) is not None

    def test_remove_expired_offer_is_conditional(self, db, sample_full_event, make_user, make_entry):
        expired = make_entry(sample_full_event, make_user("A"), status=WaitlistStatus.OFFERED, expires_at=NOW - timedelta(minutes=1))
        expired_id = expired.id
        live = make_entry(sample_full_event, make_user("B"), status=WaitlistStatus.OFFERED, expires_at=NOW + timedelta(minutes=1))
        waiting = make_entry(sample_full_event, make_user("C"))
        repo = WaitlistRepository(db)

        assert repo.remove_expired_offer(live.id, NOW) is False
        assert repo.remove_expired_offer(waiting.id, NOW) is False
        assert repo.remove_expired_offer(expired_id, NOW) is True
        assert repo.get_by_id(expired_id) is None
        assert repo.get_by_id(live.id) is not None
        assert repo.get_by_id(waiting.id) is not None
