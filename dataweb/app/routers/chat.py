from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session as DBSession

from dataweb.app.database import get_db
from dataweb.app.dependencies.auth import get_current_user
from dataweb.app.dependencies.rate_limit import chat_rate_limit
from dataweb.app.schemas.chat import ChatRequest, ChatResponse, HistoryResponse
from dataweb.app.services.analysis_client import AnalysisClient, get_analysis_client
from dataweb.app.services.chat_service import ask_question, get_history
from dataweb.app.utils.security import CurrentUser

router = APIRouter()


# Limiter runs before token verification
@router.post("/chat", response_model=ChatResponse, dependencies=[Depends(chat_rate_limit)])
def chat(
    body: ChatRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: DBSession = Depends(get_db),
    client: AnalysisClient = Depends(get_analysis_client),
):
    return ask_question(
        db,
        client,
        user_id=current_user.id,
        dataset_id=body.dataset_id,
        question=body.question,
        context=body.context,
    )


@router.get("/history", response_model=HistoryResponse)
def history(
    dataset_id: int | None = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    return HistoryResponse(history=get_history(db, current_user.id, dataset_id))
