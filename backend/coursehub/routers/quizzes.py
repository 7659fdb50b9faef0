from __future__ import annotations

import math
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from coursehub.core.rate_limit import rate_limit
from coursehub.core.security import get_current_user, require_roles
from coursehub.db.session import get_db
from coursehub.models.user import User, UserRole
from coursehub.schemas.quiz import (
    AttemptListResponse,
    QuizCreateRequest,
    QuizListResponse,
    QuizPublic,
    QuizResult,
    QuizStartResponse,
    QuizSubmitRequest,
    QuizUpdateRequest,
)
from coursehub.services.answer_recorder import SubmittedAnswer
from coursehub.services.quiz_attempts import QuizAttemptServices, get_quiz_attempt_services
from coursehub.services.quiz_authoring import QuizAuthoringService

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


def _parse_uuid(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"invalid {what} id") from e


# ---- authoring ----


@router.get("", response_model=QuizListResponse)
def list_quizzes(
    lesson_id: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    lesson_uuid = _parse_uuid(lesson_id, "lesson") if lesson_id else None
    return QuizAuthoringService(db).list_public_quizzes(lesson_id=lesson_uuid, page=page, limit=limit)


@router.post("/lesson/{lesson_id}", response_model=QuizPublic)
def create_quiz(
    lesson_id: str,
    body: QuizCreateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.teacher)),
):
    return QuizAuthoringService(db).create_quiz(_parse_uuid(lesson_id, "lesson"), body, user)


@router.get("/manage/{quiz_id}", response_model=QuizPublic)
def get_quiz_for_manage(
    quiz_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.teacher)),
):
    return QuizAuthoringService(db).get_quiz_for_manage(_parse_uuid(quiz_id, "quiz"), user)


# ---- attempts ----


@router.post("/attempts/{attempt_id}/submit", response_model=QuizResult)
def submit_quiz(
    attempt_id: str,
    body: QuizSubmitRequest,
    user: User = Depends(get_current_user),
    services: QuizAttemptServices = Depends(get_quiz_attempt_services),
    _: object = rate_limit(key_prefix="quiz_submit"),
):
    items = [
        SubmittedAnswer(
            question_id=a.question_id,
            option_id=a.option_id,
            option_ids=a.option_ids,
            answer_text=a.answer_text,
        )
        for a in body.answers
    ]
    return services.recorder.submit_answers(_parse_uuid(attempt_id, "attempt"), user.id, items)


@router.get("/attempts/{attempt_id}/result", response_model=QuizResult)
def get_attempt_result(
    attempt_id: str,
    user: User = Depends(get_current_user),
    services: QuizAttemptServices = Depends(get_quiz_attempt_services),
):
    return services.presenter.get_attempt_result(
        _parse_uuid(attempt_id, "attempt"),
        caller_id=user.id,
        caller_role=user.role,
    )


@router.post("/{quiz_id}/start", response_model=QuizStartResponse)
def start_quiz(
    quiz_id: str,
    user: User = Depends(get_current_user),
    services: QuizAttemptServices = Depends(get_quiz_attempt_services),
    _: object = rate_limit(key_prefix="quiz_start"),
):
    started = services.ledger.start_attempt(_parse_uuid(quiz_id, "quiz"), user.id)
    return QuizStartResponse(
        attempt_id=str(started.attempt_id),
        quiz_id=str(started.quiz_id),
        attempt_no=started.attempt_no,
        started_at=started.started_at,
        time_limit_minutes=started.time_limit_minutes,
    )


@router.get("/{quiz_id}/attempts", response_model=AttemptListResponse)
def list_attempts(
    quiz_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user),
    services: QuizAttemptServices = Depends(get_quiz_attempt_services),
):
    records, total = services.ledger.list_attempts(
        _parse_uuid(quiz_id, "quiz"),
        caller_id=user.id,
        caller_role=user.role,
        page=page,
        limit=limit,
    )
    return {
        "data": [
            {
                "attempt_id": str(r.id),
                "quiz_id": str(r.quiz_id),
                "student_id": str(r.student_id),
                "attempt_no": r.attempt_no,
                "status": r.status.value,
                "started_at": r.started_at,
                "completed_at": r.completed_at,
                "score": float(r.score) if r.score is not None else None,
            }
            for r in records
        ],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


# ---- single quiz ----


@router.get("/{quiz_id}", response_model=QuizPublic)
def get_quiz(quiz_id: str, db: Session = Depends(get_db)):
    return QuizAuthoringService(db).get_public_quiz(_parse_uuid(quiz_id, "quiz"))


@router.patch("/{quiz_id}", response_model=QuizPublic)
def update_quiz(
    quiz_id: str,
    body: QuizUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.teacher)),
):
    return QuizAuthoringService(db).update_quiz(_parse_uuid(quiz_id, "quiz"), body, user)


@router.delete("/{quiz_id}")
def delete_quiz(
    quiz_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.teacher)),
):
    return QuizAuthoringService(db).delete_quiz(_parse_uuid(quiz_id, "quiz"), user)
