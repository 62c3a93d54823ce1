from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ChatRequest(BaseModel):
    dataset_id: int | None = None
    question: Any = None
    context: list[Any] | None = None


class AnalysisResult(BaseModel):
    """Body returned by the analysis service's /analyze operation."""

    answer: str | None = None
    data: Any = None
    code: str | None = None
    chart_type: str | None = None


class ChatResponse(BaseModel):
    answer: str | None
    data: Any
    code: str
    chart_type: str | None


class HistoryEntry(BaseModel):
    id: int
    dataset_id: int
    dataset_name: str
    query: str
    response: str | None
    code: str | None
    created_at: datetime | None


class HistoryResponse(BaseModel):
    history: list[HistoryEntry]
