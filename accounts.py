import logging
from typing import List, Optional

from database import Store, new_id, utc_now
from errors import EmailTaken, InvalidInput, NotFound
from user import Role, User
from validators import TextValidator

logger = logging.getLogger(__name__)


class Accounts:
    """User directory. Identity is taken at face value; there are no credentials."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def list_users(self) -> List[User]:
        return self.store.users.find_all()

    def find_user(self, user_id: str) -> User:
        user = self.store.users.find_by_id(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found.")
        return user

    def find_by_email(self, email: str) -> User:
        wanted = TextValidator.normalize_email(email)
        user = self.store.users.find_first(lambda u: u.email.lower() == wanted)
        if not user:
            raise NotFound(f"No user with email {wanted}.")
        return user

    def signup(self, name: str, email: str, role: Optional[str] = None) -> User:
        if not TextValidator.validate_name(name):
            raise InvalidInput("Name cannot be empty.")
        if not TextValidator.validate_email(email):
            raise InvalidInput(f"Invalid email address: {email!r}.")
        normalized = TextValidator.normalize_email(email)
        parsed_role = Role.parse(role) if role else Role.STUDENT

        with self.store.transaction():
            if self.store.users.find_first(lambda u: u.email.lower() == normalized):
                raise EmailTaken(f"Email {normalized} is already registered.")
            user = User(id=new_id(), name=name.strip(), email=normalized, role=parsed_role,
                        created_at=utc_now().isoformat())
            self.store.users.create(user)
        logger.info(f"Registered {parsed_role.value} user {user.id} <{normalized}>")
        return user

    def login(self, email: str) -> User:
        """Look a user up by email. No credential check is made."""
        if not (email or "").strip():
            raise InvalidInput("Email is required.")
        return self.find_by_email(email)
