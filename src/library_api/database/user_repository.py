"""
User repository.

Accounts are provisioned by the bulk import, not through this API, so the
repository is read-mostly: existence checks for borrow and fine operations,
plus ``create`` for seeding and tests.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..models.user import Role, User
from .repository import BaseRepository, DuplicateError, new_id
from .schema import User as UserDB
from .session import safe_commit, safe_query


class UserRepository(BaseRepository[UserDB, User]):
    @property
    def model_class(self):
        return UserDB

    @property
    def response_schema(self):
        return User

    def get_by_email(self, email: str) -> User | None:
        db_user = safe_query(
            self.session,
            lambda s: s.execute(select(UserDB).where(UserDB.email == email)).scalar_one_or_none(),
            "Failed to get user by email",
        )
        return self._to_response_model(db_user) if db_user else None

    def create(
        self,
        name: str,
        email: str,
        role: Role = Role.USER,
        student_id: str | None = None,
        phone: str | None = None,
        user_id: str | None = None,
    ) -> User:
        """
        Create a user account.

        Raises:
            DuplicateError: If the email or student ID is already registered
        """
        db_user = UserDB(
            id=user_id or new_id("user"),
            name=name,
            email=email,
            role=Role(role),
            student_id=student_id,
            phone=phone,
        )
        self.session.add(db_user)
        try:
            safe_commit(self.session, "create user")
        except IntegrityError as e:
            raise DuplicateError(f"User with email {email} already exists") from e
        return self._to_response_model(db_user)
