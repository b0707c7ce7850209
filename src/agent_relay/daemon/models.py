"""Pydantic models for daemon API."""

from pydantic import BaseModel, Field, field_validator

from agent_relay.constants import DAEMON_ERROR_EMPTY_MESSAGE, DAEMON_STATUS_HEALTHY, VERSION
from agent_relay.sessions.client import ImageAttachment


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = DAEMON_STATUS_HEALTHY
    version: str = VERSION
    uptime_seconds: float = 0.0
    project_root: str | None = None


class ImageInput(BaseModel):
    """Inline base64 image attached to a chat message."""

    data: str
    media_type: str = "image/png"

    def to_attachment(self) -> ImageAttachment:
        return ImageAttachment(data=self.data, media_type=self.media_type)


class ChatRequest(BaseModel):
    """Chat request.

    Omitting ``session_id`` starts a new session; its id is reported in the
    stream. Passing one resumes that session.
    """

    message: str
    session_id: str | None = None
    model: str | None = None
    cwd: str | None = None
    images: list[ImageInput] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError(DAEMON_ERROR_EMPTY_MESSAGE)
        return value


class SessionInfo(BaseModel):
    """One registered session."""

    session_id: str
    model: str | None = None
    cwd: str | None = None
    idle_seconds: float = 0.0


class SessionListResponse(BaseModel):
    """Registered sessions, most recently used first."""

    sessions: list[SessionInfo] = Field(default_factory=list)
    total: int = 0


class SessionCloseResponse(BaseModel):
    session_id: str
    closed: bool = True
