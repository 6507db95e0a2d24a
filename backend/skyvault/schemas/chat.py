"""
Document Chat — Pydantic Request/Response Schemas

POST /api/v1/chat/file

Request:
  file_id   : the stored file to ask about (must be owned, not trashed, not a folder)
  messages  : conversation so far; the latest `user` message is the question
  debug     : include extraction / OCR telemetry in the reply

Response (always 200 once the file is resolved):
  answer_text     : conversational answer or a readable explanation of why
                    the file could not be read
  snippets        : 0..5 supporting sentences, most relevant first
  metadata        : document name, media type, sentence / snippet counts
  failure_reason  : null | extraction_failed | no_text_layer
  debug           : only when requested
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from skyvault.processing.pipeline import (
    ConversationMessage,
    FailureReason,
    MessageRole,
    PipelineAnswer,
)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class ChatMessageIn(BaseModel):
    role:      MessageRole
    content:   str
    timestamp: datetime | None = None

    def to_message(self) -> ConversationMessage:
        return ConversationMessage(role=self.role, content=self.content, timestamp=self.timestamp)


class ChatFileRequest(BaseModel):
    file_id:  UUID
    messages: list[ChatMessageIn] = Field(..., description="Conversation, oldest first")
    debug:    bool = False

    def conversation(self) -> list[ConversationMessage]:
        return [m.to_message() for m in self.messages]


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

class AnswerMetadataOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_name:  str
    media_type:     str
    sentence_count: int
    snippet_count:  int


class OcrDebugOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempted:  bool
    succeeded:  bool
    error:      str | None = None
    elapsed_ms: float | None = None


class ChatDebugOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    media_type:            str
    extraction_elapsed_ms: float
    text_length:           int
    text_preview:          str
    sentence_preview:      list[str]
    extraction_error:      str | None = None
    ocr:                   OcrDebugOut | None = None


class ChatFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    answer_text:    str
    snippets:       list[str]
    metadata:       AnswerMetadataOut
    failure_reason: FailureReason | None = None
    debug:          ChatDebugOut | None = None

    @classmethod
    def from_pipeline(cls, answer: PipelineAnswer) -> "ChatFileResponse":
        return cls.model_validate(answer)
