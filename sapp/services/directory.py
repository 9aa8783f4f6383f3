"""Read-only lookups against the user directory and the category catalog."""

from sqlalchemy import or_, select
from sqlalchemy.orm import sessionmaker

from sapp.core.db import Category, Partnership, User
from sapp.core.errors import ConfigurationFailure
from sapp.core.models import CategoryInfo, Person


class UserDirectory:
    """Resolves user ids to display names and partners."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.Session = session_factory

    def find_person(self, user_id: int) -> Person | None:
        with self.Session() as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            return Person(id=user.id, name=user.first_name or user.username)

    def get_person(self, user_id: int) -> Person:
        """Return the person for a user id, raising ConfigurationFailure when it does not exist."""
        person = self.find_person(user_id)
        if person is None:
            msg = f"user {user_id} not found"
            raise ConfigurationFailure(msg)
        return person

    def partner_id(self, user_id: int) -> int | None:
        """Return the id of the user's partner, if the user has one."""
        stmt = select(Partnership).where(or_(Partnership.user1_id == user_id, Partnership.user2_id == user_id))
        with self.Session() as session:
            partnership = session.execute(stmt).scalars().first()
        if partnership is None:
            return None
        return partnership.user2_id if partnership.user1_id == user_id else partnership.user1_id


class CategoryCatalog:
    """The category catalog, ordered by name."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.Session = session_factory

    def list_categories(self) -> list[CategoryInfo]:
        with self.Session() as session:
            rows = session.execute(select(Category.name, Category.ai_notes).order_by(Category.name)).all()
        return [CategoryInfo(name=row.name, hint=row.ai_notes or "") for row in rows]
