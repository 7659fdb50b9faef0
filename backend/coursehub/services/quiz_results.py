from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from coursehub.core.errors import ForbiddenError, NotFoundError
from coursehub.models.user import UserRole
from coursehub.schemas.quiz import QuizAnswerResult, QuizResult
from coursehub.services.quiz_definitions import QuizDefinition, QuizDefinitionReader, can_manage_quiz

if TYPE_CHECKING:
    from coursehub.services.attempt_ledger import AttemptRecord, AttemptStore
    from coursehub.services.quiz_scoring import ScoreSheet, ScoringEngine


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values; everything is written in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def time_taken_seconds(started_at: datetime | None, completed_at: datetime | None) -> int:
    if started_at is None or completed_at is None:
        return 0
    delta = _as_utc(completed_at) - _as_utc(started_at)
    return max(0, int(delta.total_seconds()))


def present_result(*, attempt: AttemptRecord, definition: QuizDefinition, sheet: ScoreSheet) -> QuizResult:
    return QuizResult(
        attempt_id=str(attempt.id),
        quiz_id=str(definition.id),
        quiz_title=definition.title,
        score=float(sheet.score),
        total_points=int(sheet.total_points),
        percentage=float(sheet.percentage),
        status=attempt.status.value,
        started_at=_as_utc(attempt.started_at),
        completed_at=_as_utc(attempt.completed_at) if attempt.completed_at is not None else None,
        time_taken_seconds=time_taken_seconds(attempt.started_at, attempt.completed_at),
        answers=[
            QuizAnswerResult(
                question_id=str(e.question_id),
                question_content=e.question_content,
                question_points=e.question_points,
                your_answer=e.your_answer,
                correct_answer=e.correct_answer,
                is_correct=e.is_correct,
                points_earned=e.points_earned,
            )
            for e in sheet.entries
        ],
    )


class ResultPresenter:
    """Authorizes result viewing and hands off to the scoring engine."""

    def __init__(self, *, definitions: QuizDefinitionReader, attempts: AttemptStore, engine: ScoringEngine):
        self.definitions = definitions
        self.attempts = attempts
        self.engine = engine

    def get_attempt_result(
        self,
        attempt_id: uuid.UUID,
        *,
        caller_id: uuid.UUID,
        caller_role: UserRole,
    ) -> QuizResult:
        attempt = self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("attempt not found")

        if attempt.student_id != caller_id and not can_manage_quiz(
            self.definitions, attempt.quiz_id, caller_id=caller_id, caller_role=caller_role
        ):
            raise ForbiddenError("not allowed to view this attempt")

        return self.engine.calculate_result(attempt.id)
