"""User profile service."""
import logging
from datetime import datetime
from sqlalchemy.orm import Session

from errors import NotFoundError, not_found
from models import Profile, User
from schemas import ProfileUpdate

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for the profile attached to each user."""

    def create_profile(self, db: Session) -> Profile:
        """Create an empty profile. Does not commit."""
        profile = Profile()
        db.add(profile)
        db.flush()
        return profile

    def get_profile_data(self, db: Session, user: User) -> Profile:
        if user.profile_id is None:
            raise NotFoundError("Profile not found")
        profile = db.query(Profile).filter(Profile.id == user.profile_id).first()
        if profile is None:
            raise not_found("Profile", user.profile_id)
        return profile

    def update_profile(self, db: Session, user: User, data: ProfileUpdate) -> Profile:
        profile = self.get_profile_data(db, user)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(profile, field, value)
        profile.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(profile)
        return profile

    def delete_profile(self, db: Session, profile_id: int) -> None:
        """Delete a profile. Does not commit."""
        db.query(Profile).filter(Profile.id == profile_id).delete(synchronize_session=False)
