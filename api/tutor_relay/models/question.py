"""Pydantic models for the question review workflow."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Platform(str, Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


class InboundMessageKind(str, Enum):
    TEXT = "text"
    PHOTO = "photo"
    UNSUPPORTED = "unsupported"


class ReviewAction(str, Enum):
    APPROVE = "approve_button"
    EDIT = "edited_button"


# ---------------------------------------------------------------------------
# Question records
# ---------------------------------------------------------------------------


class QuestionRecordCreate(BaseModel):
    """Fields required to store a freshly answered question."""

    requester_id: str = Field(..., min_length=1, max_length=128)
    requester_name: str = Field(..., max_length=256)
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    is_from_image: bool = False
    image_url: Optional[str] = None

    @field_validator("requester_id", mode="before")
    @classmethod
    def coerce_requester_id(cls, v):
        # Telegram user ids arrive as integers
        if isinstance(v, int):
            return str(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("question", mode="before")
    @classmethod
    def strip_question(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


class QuestionRecord(BaseModel):
    """Full question record (database row)."""

    id: str
    requester_id: str
    requester_name: str
    question: str
    answer: str
    edited_answer: Optional[str] = None
    is_approved: bool = False
    is_from_image: bool = False
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None

    @property
    def final_answer(self) -> str:
        """Answer the student receives: the edit if one was made."""
        return self.edited_answer or self.answer


class QuestionApproval(BaseModel):
    """The single mutation applied to a record when a reviewer approves it."""

    approved_by: str = Field(..., min_length=1, max_length=128)
    edited_answer: Optional[str] = None

    @field_validator("edited_answer", mode="before")
    @classmethod
    def strip_edit(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip() if isinstance(v, str) else v
        if not v:
            raise ValueError("edited_answer must not be empty")
        return v


# ---------------------------------------------------------------------------
# User profiles
# ---------------------------------------------------------------------------


class UserProfile(BaseModel):
    """Lightweight profile of a student, one per (platform, platform_user_id)."""

    platform: Platform
    platform_user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    questions_count: int = Field(default=0, ge=0)
    last_interaction_at: datetime
    created_at: datetime


# ---------------------------------------------------------------------------
# Channel-facing models
# ---------------------------------------------------------------------------


class InboundMessage(BaseModel):
    """One student turn received from the messaging channel."""

    platform: Platform = Platform.TELEGRAM
    message_id: Optional[str] = None
    chat_id: str
    user_id: str
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None
    text: Optional[str] = None
    photo_file_id: Optional[str] = None

    @field_validator("chat_id", "user_id", "message_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def kind(self) -> InboundMessageKind:
        if self.photo_file_id:
            return InboundMessageKind.PHOTO
        if self.text and self.text.strip():
            return InboundMessageKind.TEXT
        return InboundMessageKind.UNSUPPORTED

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or self.user_id


class ReviewMessageRef(BaseModel):
    """Location of a posted review card, used for in-place updates."""

    channel_id: str
    ts: str


class PendingReviewContext(BaseModel):
    """Context carried through the edit form so a submission can find its card.

    Serialized into the modal's private metadata with the keys ``data_key``,
    ``channel_id`` and ``message_ts``.
    """

    record_id: str = Field(..., alias="data_key")
    channel_id: str
    message_ts: str

    model_config = {"populate_by_name": True}

    @property
    def message_ref(self) -> ReviewMessageRef:
        return ReviewMessageRef(channel_id=self.channel_id, ts=self.message_ts)


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class QuestionRecordNotFoundError(Exception):
    pass


class QuestionAlreadyApprovedError(Exception):
    pass


class AnswerServiceError(Exception):
    pass


class ReviewChannelError(Exception):
    pass


class MessagingDeliveryError(Exception):
    pass


class AttachmentDownloadError(Exception):
    pass


class ArchivalError(Exception):
    pass
