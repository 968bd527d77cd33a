import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """Opaque unique identifier for users and notes."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
class User(BaseModel):
    """
    A registered user as kept in the users collection.
    Only the salted hash of the password is ever stored.
    """
    id: str = Field(default_factory=new_id)
    email: str
    password_hash: str


# PUBLIC_INTERFACE
class Note(BaseModel):
    """
    A Markdown note. Serialized with the `userId` key on disk and on the wire.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    title: str
    content: str = ""
    user_id: Optional[str] = Field(default=None, alias="userId")
    created_at: datetime = Field(default_factory=utcnow)
    shared: bool = False


# SQLAlchemy tables for the SQL backend. `position` keeps storage order.

# PUBLIC_INTERFACE
class UserRow(Base):
    """
    SQLAlchemy model for a user.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(256), unique=True, index=True, nullable=False)
    password_hash = Column(String(256), nullable=False)
    position = Column(Integer, nullable=False, index=True)

    @classmethod
    def from_record(cls, user: User, position: int) -> "UserRow":
        return cls(id=user.id, email=user.email, password_hash=user.password_hash, position=position)

    def to_record(self) -> User:
        return User(id=self.id, email=self.email, password_hash=self.password_hash)


# PUBLIC_INTERFACE
class NoteRow(Base):
    """
    SQLAlchemy model for a note. No foreign key on user_id: users are never
    deleted and the file-backed API accepts any owner id.
    """
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, default="")
    user_id = Column(String(36), index=True, nullable=True)
    # naive UTC
    created_at = Column(DateTime, nullable=False)
    shared = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, index=True)

    @classmethod
    def from_record(cls, note: Note, position: int) -> "NoteRow":
        created = note.created_at
        if created.tzinfo is not None:
            created = created.astimezone(timezone.utc).replace(tzinfo=None)
        return cls(
            id=note.id,
            title=note.title,
            content=note.content,
            user_id=note.user_id,
            created_at=created,
            shared=note.shared,
            position=position,
        )

    def to_record(self) -> Note:
        return Note(
            id=self.id,
            title=self.title,
            content=self.content or "",
            user_id=self.user_id,
            created_at=self.created_at.replace(tzinfo=timezone.utc),
            shared=bool(self.shared),
        )
