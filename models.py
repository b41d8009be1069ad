from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, Any, List
from config import (BOARD_NAME_MIN_LENGTH, BOARD_NAME_MAX_LENGTH, POST_CONTENT_MIN_LENGTH,
                   POST_CONTENT_MAX_LENGTH, SECRET_MIN_LENGTH, SECRET_MAX_LENGTH)


def _check_text(v: str) -> str:
    if len(v) < POST_CONTENT_MIN_LENGTH or len(v) > POST_CONTENT_MAX_LENGTH:
        raise ValueError(f'Text must be {POST_CONTENT_MIN_LENGTH}-{POST_CONTENT_MAX_LENGTH} characters')
    if not v.strip():
        raise ValueError('Text cannot be blank')
    return v


def _check_secret(v: str) -> str:
    # Secrets are compared byte-exact, so they are never stripped.
    if len(v) < SECRET_MIN_LENGTH or len(v) > SECRET_MAX_LENGTH:
        raise ValueError(f'Secret must be {SECRET_MIN_LENGTH}-{SECRET_MAX_LENGTH} characters')
    return v


def _check_id(v: str) -> str:
    if not v or not v.strip():
        raise ValueError('Identifier is required')
    return v


class NewThread(BaseModel):
    board: str
    text: str
    secret: str

    @field_validator('board')
    @classmethod
    def validate_board(cls, v):
        if len(v) < BOARD_NAME_MIN_LENGTH or len(v) > BOARD_NAME_MAX_LENGTH:
            raise ValueError(f'Board name must be {BOARD_NAME_MIN_LENGTH}-{BOARD_NAME_MAX_LENGTH} characters')
        if not v.strip():
            raise ValueError('Board name cannot be blank')
        if '/' in v:
            raise ValueError('Board name cannot contain "/"')
        return v

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        return _check_text(v)

    @field_validator('secret')
    @classmethod
    def validate_secret(cls, v):
        return _check_secret(v)


class NewReply(BaseModel):
    thread_id: str
    text: str
    secret: str

    @field_validator('thread_id')
    @classmethod
    def validate_thread_id(cls, v):
        return _check_id(v)

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        return _check_text(v)

    @field_validator('secret')
    @classmethod
    def validate_secret(cls, v):
        return _check_secret(v)


class ModerationRequest(BaseModel):
    thread_id: str
    reply_id: Optional[str] = None
    secret: str

    @field_validator('thread_id', 'reply_id')
    @classmethod
    def validate_ids(cls, v):
        return v if v is None else _check_id(v)

    @field_validator('secret')
    @classmethod
    def validate_secret(cls, v):
        return _check_secret(v)


# Wire models: field names follow the board's public JSON contract.

class ThreadCreateBody(BaseModel):
    text: str
    delete_password: str


class ReplyCreateBody(BaseModel):
    thread_id: str
    text: str
    delete_password: str


class ThreadDeleteBody(BaseModel):
    thread_id: str
    delete_password: str


class ReplyDeleteBody(BaseModel):
    thread_id: str
    reply_id: str
    delete_password: str


class ThreadReportBody(BaseModel):
    thread_id: str


class ReplyReportBody(BaseModel):
    thread_id: str
    reply_id: str


class PublicReply(BaseModel):
    """Reply as shown to readers: no secret, no report flag"""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias='_id')
    text: str
    created_on: datetime


class PublicThread(BaseModel):
    """Thread as shown to readers: no secret, no report flag"""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias='_id')
    text: str
    created_on: datetime
    bumped_on: datetime
    replies: List[PublicReply]


class ThreadCreated(BaseModel):
    thread_id: str
    board: str
    location: str


class ReplyCreated(BaseModel):
    thread_id: str
    reply_id: str
    board: Optional[str] = None
    location: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: float
    storage: Dict[str, Any]
