"""
Document Chat API

POST /api/v1/chat/file   → heuristic answer about one stored file

Request lifecycle:
  ┌─────────────────────────────────────────────────────────┐
  │ 1. JWT verification → user.sub                          │
  │ 2. Conversation must contain a user message (400)       │
  │ 3. File lookup: owned, not trashed (404), not a folder  │
  │    (400)                                                │
  │ 4. DocumentQAPipeline: extract → OCR fallback → answer  │
  │ 5. 200 with answer, snippets, metadata [, debug]        │
  └─────────────────────────────────────────────────────────┘

Extraction and OCR problems never become HTTP errors: the pipeline turns
them into a readable answer with `failure_reason` set.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from skyvault.auth.dependencies import CurrentUser, Files, Pipeline
from skyvault.processing.pipeline import MissingQuestionError, latest_user_question
from skyvault.schemas.chat import ChatFileRequest, ChatFileResponse
from skyvault.schemas.errors import ErrorResponse, FileErrors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Document Chat"])


@router.post(
    "/file",
    response_model=ChatFileResponse,
    summary="Ask a question about a stored file",
    description=(
        "Extracts the file's text (plain text, PDF text layer or Word; OCR for "
        "scanned PDFs) and returns the sentences that best match the question."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "No user message, or the file is a folder"},
        401: {"model": ErrorResponse, "description": "Missing or invalid JWT"},
        404: {"model": ErrorResponse, "description": "File not found, not owned, or trashed"},
    },
)
async def chat_with_file(
    body:     ChatFileRequest,
    user:     CurrentUser,
    files:    Files,
    pipeline: Pipeline,
) -> ChatFileResponse:
    conversation = body.conversation()
    try:
        latest_user_question(conversation)
    except MissingQuestionError:
        raise FileErrors.missing_question()

    document = await files.get_chat_document(body.file_id)

    logger.info(
        "Chat request | user=%s file=%s media_type=%s debug=%s",
        user.sub, body.file_id, document.media_type, body.debug,
    )

    try:
        answer = await pipeline.answer_about_document(document, conversation, debug=body.debug)
    except MissingQuestionError:
        raise FileErrors.missing_question()

    return ChatFileResponse.from_pipeline(answer)
