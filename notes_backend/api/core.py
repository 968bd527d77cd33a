import logging
from typing import Any, Dict, List, NamedTuple, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import ValidationError as SchemaError

from notes_backend.api.errors import DuplicateUser, InvalidCredentials, NotAuthenticated, NotFound, ValidationError
from notes_backend.api.security import SessionRegistry, get_password_hash, verify_password
from notes_database.models import Note, User
from notes_database.store import DataStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "content", "shared")


# PUBLIC_INTERFACE
def build_share_url(origin: str, note_id: str) -> str:
    """Public read-only link for a shared note: <origin>/share/<noteId>."""
    return f"{origin.rstrip('/')}/share/{note_id}"


def _index_of(notes: List[Note], note_id: str, user_id: Optional[str] = None) -> Optional[int]:
    for i, note in enumerate(notes):
        if note.id == note_id and (user_id is None or note.user_id == user_id):
            return i
    return None


# PUBLIC_INTERFACE
def normalize_email(email: str) -> str:
    """
    Canonical form of an email address, the same one pydantic's EmailStr
    produces (domain lowercased). Raises EmailNotValidError for bad input.
    """
    return validate_email(email.strip(), check_deliverability=False).normalized


# === Store-level note operations (used by the /api/notes routes) ===

# PUBLIC_INTERFACE
def list_user_notes(store: DataStore, user_id: str) -> List[Note]:
    """Notes owned by user_id, in storage order."""
    _, notes = store.load()
    return [n for n in notes if n.user_id == user_id]


# PUBLIC_INTERFACE
def add_note(store: DataStore, user_id: str, title: str, content: str = "") -> Note:
    """Append a new unshared note owned by user_id."""
    note = Note(title=title, content=content, user_id=user_id)
    with store.transaction() as snap:
        snap.notes.append(note)
    return note


# PUBLIC_INTERFACE
def replace_note(store: DataStore, note_id: str, title: str, content: str) -> Note:
    """Overwrite title and content of a note. Raises NotFound for an unknown id."""
    with store.transaction() as snap:
        idx = _index_of(snap.notes, note_id)
        if idx is None:
            raise NotFound()
        note = snap.notes[idx]
        note.title = title
        note.content = content
    return note


# PUBLIC_INTERFACE
def remove_note(store: DataStore, note_id: str) -> None:
    with store.transaction() as snap:
        snap.notes[:] = [n for n in snap.notes if n.id != note_id]


# PUBLIC_INTERFACE
def set_note_shared(store: DataStore, note_id: str, shared: bool) -> Note:
    """Set the shared flag of a note. Raises NotFound for an unknown id."""
    with store.transaction() as snap:
        idx = _index_of(snap.notes, note_id)
        if idx is None:
            raise NotFound()
        note = snap.notes[idx]
        note.shared = shared
    return note


# PUBLIC_INTERFACE
def find_shared_note(store: DataStore, note_id: str) -> Optional[Note]:
    """The note with note_id if it is shared, else None. No ownership check."""
    _, notes = store.load()
    return next((n for n in notes if n.id == note_id and n.shared), None)


# === Facade ===

class AuthSession(NamedTuple):
    user: User
    access_token: str


# PUBLIC_INTERFACE
class NotesFacade:
    """
    User-scoped CRUD over the note collection plus session bookkeeping.

    There is no current-user pointer: every call that needs a session takes
    the bearer token issued by sign_up/sign_in. Every mutating call persists
    both collections in full through a store transaction.
    """

    def __init__(self, store: DataStore, sessions: SessionRegistry):
        self.store = store
        self.sessions = sessions

    def _session_user(self, token: Optional[str], users: List[User]) -> User:
        user_id = self.sessions.resolve(token)
        if user_id is None:
            raise NotAuthenticated()
        user = next((u for u in users if u.id == user_id), None)
        if user is None:
            raise NotAuthenticated()
        return user

    # --- sessions ---

    def sign_up(self, email: str, password: str) -> AuthSession:
        """Register a new user and open a session. Raises DuplicateUser if the email is taken."""
        try:
            email = normalize_email(email)
        except EmailNotValidError as exc:
            raise ValidationError(str(exc)) from exc
        with self.store.transaction() as snap:
            if any(u.email == email for u in snap.users):
                raise DuplicateUser()
            user = User(email=email, password_hash=get_password_hash(password))
            snap.users.append(user)
        logger.info("Registered user %s", user.id)
        return AuthSession(user, self.sessions.open(user.id))

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Open a session for matching credentials. Raises InvalidCredentials otherwise."""
        try:
            email = normalize_email(email)
        except EmailNotValidError:
            verify_password(password, None)
            raise InvalidCredentials() from None
        users, _ = self.store.load()
        user = next((u for u in users if u.email == email), None)
        if not verify_password(password, user.password_hash if user else None):
            logger.warning("Failed sign-in attempt")
            raise InvalidCredentials()
        logger.info("User %s signed in", user.id)
        return AuthSession(user, self.sessions.open(user.id))

    def sign_out(self, token: Optional[str]) -> None:
        if self.sessions.revoke(token):
            logger.info("Session closed")

    def current_user(self, token: Optional[str]) -> User:
        users, _ = self.store.load()
        return self._session_user(token, users)

    # --- notes ---

    def get_notes(self, token: Optional[str]) -> List[Note]:
        """The session user's notes in storage order; empty without a live session."""
        users, notes = self.store.load()
        try:
            user = self._session_user(token, users)
        except NotAuthenticated:
            return []
        return [n for n in notes if n.user_id == user.id]

    def create_note(self, token: Optional[str], title: str, content: str = "") -> Note:
        with self.store.transaction() as snap:
            user = self._session_user(token, snap.users)
            note = Note(title=title, content=content, user_id=user.id)
            snap.notes.append(note)
        return note

    def update_note(self, token: Optional[str], note_id: str, fields: Dict[str, Any]) -> Note:
        """
        Shallow merge of the supplied fields (title, content, shared) into an
        owned note. Keys that are not supplied keep their value.
        """
        with self.store.transaction() as snap:
            user = self._session_user(token, snap.users)
            unknown = set(fields) - set(UPDATABLE_FIELDS)
            if unknown:
                raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
            idx = _index_of(snap.notes, note_id, user.id)
            if idx is None:
                raise NotFound()
            merged = {**snap.notes[idx].model_dump(), **fields}
            try:
                note = Note.model_validate(merged)
            except SchemaError as exc:
                raise ValidationError(str(exc)) from exc
            snap.notes[idx] = note
        return note

    def delete_note(self, token: Optional[str], note_id: str) -> None:
        """Remove an owned note. Ids the user does not own are left alone."""
        with self.store.transaction() as snap:
            user = self._session_user(token, snap.users)
            snap.notes[:] = [n for n in snap.notes if not (n.id == note_id and n.user_id == user.id)]

    def toggle_note_sharing(self, token: Optional[str], note_id: str) -> Note:
        with self.store.transaction() as snap:
            user = self._session_user(token, snap.users)
            idx = _index_of(snap.notes, note_id, user.id)
            if idx is None:
                raise NotFound()
            note = snap.notes[idx]
            note.shared = not note.shared
        logger.info("Note %s shared=%s", note.id, note.shared)
        return note

    def get_shared_note(self, note_id: str) -> Optional[Note]:
        return find_shared_note(self.store, note_id)
