import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from schema import Profile

logger = logging.getLogger(__name__)

ACCOUNT_KEY = "account_id"


class SessionIdentity:
    """
    Tracks who the current shopper is, using the same local store as the guest
    cart. Listeners registered with on_change run on sign-in (with the new
    account id) and on sign-out (with None).
    """

    def __init__(self, store):
        self._store = store
        self._listeners: List[Callable[[Optional[str]], None]] = []

    def current(self) -> Optional[str]:
        return self._store.get(ACCOUNT_KEY)

    def on_change(self, callback: Callable[[Optional[str]], None]) -> None:
        self._listeners.append(callback)

    def sign_in(self, account_id: str) -> None:
        previous = self.current()
        self._store.set(ACCOUNT_KEY, account_id)
        if previous != account_id:
            self._notify(account_id)

    def sign_out(self) -> None:
        if self.current() is None:
            return
        self._store.remove(ACCOUNT_KEY)
        self._notify(None)

    def _notify(self, account_id: Optional[str]) -> None:
        for callback in self._listeners:
            callback(account_id)


def find_profile(db, email: str) -> Optional[Profile]:
    return db.query(Profile).filter_by(email=email.strip().lower()).first()


def register_profile(db, email: str, password: str, full_name: str = "") -> Profile:
    """
    Creates a new shopper profile with a salted password hash.

    Raises:
        ValueError: if the email is already registered.
    """
    email = email.strip().lower()
    if find_profile(db, email):
        raise ValueError("Email is already registered")

    profile = Profile(
        id=str(uuid.uuid4()),
        email=email,
        full_name=full_name.strip(),
        password_hash=generate_password_hash(password),
        created_at=datetime.now(timezone.utc),
    )
    db.add(profile)
    db.commit()
    logger.info(f"Registered profile {profile.id}")
    return profile


def authenticate(db, email: str, password: str) -> Optional[Profile]:
    profile = find_profile(db, email)
    if profile is None or not check_password_hash(profile.password_hash, password):
        return None
    return profile
