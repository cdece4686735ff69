# inklink/crud/crud_profile.py
from typing import Optional
from sqlalchemy.orm import Session

from inklink.models.profile import Profile


class CRUDProfile:
    """
    Read access to responder profiles.

    Profiles are owned by the profile service; the only write this service
    makes is the booking version bump that serializes bookings.
    """

    def __init__(self, model):
        self.model = model

    def get(self, db: Session, *, id: str) -> Optional[Profile]:
        return db.query(self.model).filter(self.model.id == id).first()

    def lock_for_booking(self, db: Session, *, id: str) -> Optional[Profile]:
        """
        Take the per-profile booking lock.

        SELECT ... FOR UPDATE holds the row until commit/rollback, so two
        bookings for the same profile run their conflict check one at a time.
        The version bump makes the write visible on backends that ignore
        FOR UPDATE (SQLite serializes writers instead).
        """
        profile = (
            db.query(self.model)
            .filter(self.model.id == id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if profile is None:
            return None
        profile.booking_version = (profile.booking_version or 0) + 1
        db.add(profile)
        db.flush()
        return profile


profile = CRUDProfile(Profile)
