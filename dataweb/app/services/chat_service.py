"""Question answering against an owned dataset, plus the chat history trail."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from dataweb.app.config import settings
from dataweb.app.errors import InternalError, ValidationError
from dataweb.app.models.chat_history import ChatHistory
from dataweb.app.models.dataset import Dataset
from dataweb.app.schemas.chat import ChatResponse, HistoryEntry
from dataweb.app.services.analysis_client import AnalysisClient
from dataweb.app.services.file_service import decode_schema, get_owned_dataset

logger = logging.getLogger("dataweb.chat")


def validate_question(dataset_id: int | None, question: Any) -> str:
    if not dataset_id or question is None or question == "":
        raise ValidationError("dataset_id and question are required")
    if not isinstance(question, str) or not question.strip():
        raise ValidationError("Question must be a non-empty string")
    if len(question) > settings.MAX_QUESTION_LENGTH:
        raise ValidationError(f"Question too long — {settings.MAX_QUESTION_LENGTH} characters max")
    return question


def save_history(
    db: DBSession,
    user_id: int,
    dataset_id: int,
    question: str,
    answer: str,
    code: str,
) -> ChatHistory:
    entry = ChatHistory(
        user_id=user_id,
        dataset_id=dataset_id,
        query=question,
        response=answer,
        code=code,
    )
    db.add(entry)
    db.commit()
    return entry


def ask_question(
    db: DBSession,
    client: AnalysisClient,
    user_id: int,
    dataset_id: int | None,
    question: Any,
    context: list[Any] | None = None,
) -> ChatResponse:
    question = validate_question(dataset_id, question)

    dataset = get_owned_dataset(db, dataset_id, user_id)

    schema = decode_schema(dataset.schema_json)
    if not schema or len(schema["columns"]) == 0:
        raise ValidationError("Dataset has invalid schema — re-upload the CSV")

    # Upstream errors propagate before anything is written
    result = client.analyze(
        file_path=dataset.file_path,
        schema=schema,
        question=question,
        context=context or [],
    )

    try:
        save_history(db, user_id, dataset.id, question, result.answer or "", result.code or "")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to record chat history for dataset=%s: %s", dataset.id, e)
        raise InternalError()

    logger.info("Answered question user=%s dataset=%s", user_id, dataset.id)
    return ChatResponse(
        answer=result.answer,
        data=result.data or {},
        code=result.code or "",
        chart_type=result.chart_type or None,
    )


def get_history(db: DBSession, user_id: int, dataset_id: int | None = None) -> list[HistoryEntry]:
    """Most recent exchanges for the user, newest first, capped at HISTORY_LIMIT."""
    query = (
        db.query(ChatHistory, Dataset.original_name)
        .join(Dataset, ChatHistory.dataset_id == Dataset.id)
        .filter(ChatHistory.user_id == user_id, Dataset.user_id == user_id)
    )
    if dataset_id is not None:
        query = query.filter(ChatHistory.dataset_id == dataset_id)

    rows = (
        query.order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
        .limit(settings.HISTORY_LIMIT)
        .all()
    )
    return [
        HistoryEntry(
            id=entry.id,
            dataset_id=entry.dataset_id,
            dataset_name=dataset_name,
            query=entry.query,
            response=entry.response,
            code=entry.code,
            created_at=entry.created_at,
        )
        for entry, dataset_name in rows
    ]
