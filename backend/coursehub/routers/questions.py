from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from coursehub.core.security import get_current_user_optional, require_roles
from coursehub.db.session import get_db
from coursehub.models.user import User, UserRole
from coursehub.schemas.question import QuestionCreateRequest, QuestionPublic, QuestionUpdateRequest
from coursehub.services.quiz_authoring import QuizAuthoringService

router = APIRouter(prefix="/quizzes/{quiz_id}/questions", tags=["questions"])


def _ids(quiz_id: str, question_id: str | None = None) -> tuple[uuid.UUID, uuid.UUID | None]:
    try:
        quiz_uuid = uuid.UUID(quiz_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="invalid quiz id") from e
    if question_id is None:
        return quiz_uuid, None
    try:
        return quiz_uuid, uuid.UUID(question_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="invalid question id") from e


@router.get("", response_model=list[QuestionPublic])
def list_questions(
    quiz_id: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_current_user_optional),
):
    qid, _ = _ids(quiz_id)
    return QuizAuthoringService(db).list_questions(qid, user)


@router.get("/{question_id}", response_model=QuestionPublic)
def get_question(
    quiz_id: str,
    question_id: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_current_user_optional),
):
    qid, question_uuid = _ids(quiz_id, question_id)
    return QuizAuthoringService(db).get_question(qid, question_uuid, user)


@router.post("", response_model=QuestionPublic)
def create_question(
    quiz_id: str,
    body: QuestionCreateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.teacher)),
):
    qid, _ = _ids(quiz_id)
    return QuizAuthoringService(db).create_question(qid, body, user)


@router.patch("/{question_id}", response_model=QuestionPublic)
def update_question(
    quiz_id: str,
    question_id: str,
    body: QuestionUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.teacher)),
):
    qid, question_uuid = _ids(quiz_id, question_id)
    return QuizAuthoringService(db).update_question(qid, question_uuid, body, user)


@router.delete("/{question_id}")
def delete_question(
    quiz_id: str,
    question_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.teacher)),
):
    qid, question_uuid = _ids(quiz_id, question_id)
    return QuizAuthoringService(db).delete_question(qid, question_uuid, user)
