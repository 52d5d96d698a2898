"""Note and user models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator


class ContentType(StrEnum):
    """How a note's content should be rendered."""

    TEXT = "text"
    HTML = "html"


class UserRef(BaseModel):
    """Display identity of a user, as shown on notes and search results."""

    id: str
    username: str
    email: str


class User(BaseModel):
    """A registered user."""

    id: str
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_-]+$")
    email: str = Field(pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    created_at: datetime | None = None

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def ref(self) -> UserRef:
        """Display identity for this user."""
        return UserRef(id=self.id, username=self.username, email=self.email)


class NoteImage(BaseModel):
    """An image attached to a note. Storage of the image itself is external."""

    url: str
    caption: str = ""
    uploaded_at: datetime | None = None


class Note(BaseModel):
    """A note in the record store, the source of truth for search."""

    id: str
    title: str
    content: str
    content_type: ContentType = ContentType.TEXT
    tags: list[str] = Field(default_factory=list)
    owner: str
    collaborators: list[str] = Field(default_factory=list)
    folder_id: str | None = None
    is_pinned: bool = False
    images: list[NoteImage] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    needs_reindex: bool = True

    @model_validator(mode="after")
    def _owner_not_collaborator(self) -> "Note":
        if self.owner in self.collaborators:
            raise ValueError(f"Owner {self.owner} cannot also be a collaborator")
        return self

    def is_visible_to(self, user_id: str) -> bool:
        """True if the user owns the note or collaborates on it."""
        return self.owner == user_id or user_id in self.collaborators


class NoteView(BaseModel):
    """A note with owner and collaborators expanded to display identities."""

    note: Note
    owner: UserRef
    collaborators: list[UserRef] = Field(default_factory=list)
