from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursehub.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from coursehub.models.attempt import QuizAttempt, QuizAttemptStatus
from coursehub.models.user import UserRole
from coursehub.services.quiz_definitions import QuizDefinitionReader, can_manage_quiz

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptRecord:
    id: uuid.UUID
    quiz_id: uuid.UUID
    student_id: uuid.UUID
    attempt_no: int
    status: QuizAttemptStatus
    started_at: datetime
    completed_at: datetime | None
    score: Decimal | None


@dataclass(frozen=True)
class StartedAttempt:
    attempt_id: uuid.UUID
    quiz_id: uuid.UUID
    attempt_no: int
    started_at: datetime
    time_limit_minutes: int | None


class UnitOfWork(Protocol):
    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class AttemptStore(Protocol):
    def get(self, attempt_id: uuid.UUID) -> AttemptRecord | None: ...

    def count_for(self, *, quiz_id: uuid.UUID, student_id: uuid.UUID) -> int: ...

    def create(self, *, quiz_id: uuid.UUID, student_id: uuid.UUID, attempt_no: int) -> AttemptRecord: ...

    def transition_to_submitted(self, attempt_id: uuid.UUID, *, score: Decimal, completed_at: datetime) -> bool: ...

    def list_for_quiz(
        self,
        quiz_id: uuid.UUID,
        *,
        student_id: uuid.UUID | None,
        offset: int,
        limit: int,
    ) -> tuple[list[AttemptRecord], int]: ...


def _record(row: QuizAttempt) -> AttemptRecord:
    return AttemptRecord(
        id=row.id,
        quiz_id=row.quiz_id,
        student_id=row.student_id,
        attempt_no=int(row.attempt_no),
        status=row.status,
        started_at=row.started_at,
        completed_at=row.completed_at,
        score=row.score,
    )


class SqlAttemptStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, attempt_id: uuid.UUID) -> AttemptRecord | None:
        row = self.db.scalar(select(QuizAttempt).where(QuizAttempt.id == attempt_id))
        return _record(row) if row is not None else None

    def count_for(self, *, quiz_id: uuid.UUID, student_id: uuid.UUID) -> int:
        n = self.db.scalar(
            select(func.count(QuizAttempt.id)).where(
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.student_id == student_id,
            )
        )
        return int(n or 0)

    def create(self, *, quiz_id: uuid.UUID, student_id: uuid.UUID, attempt_no: int) -> AttemptRecord:
        row = QuizAttempt(
            quiz_id=quiz_id,
            student_id=student_id,
            attempt_no=attempt_no,
            status=QuizAttemptStatus.IN_PROGRESS,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConflictError(
                "another attempt was started concurrently, retry",
                error_code="attempt_number_conflict",
            ) from e
        return _record(row)

    def transition_to_submitted(self, attempt_id: uuid.UUID, *, score: Decimal, completed_at: datetime) -> bool:
        res = self.db.execute(
            update(QuizAttempt)
            .where(
                QuizAttempt.id == attempt_id,
                QuizAttempt.status == QuizAttemptStatus.IN_PROGRESS,
            )
            .values(
                status=QuizAttemptStatus.SUBMITTED,
                completed_at=completed_at,
                score=score,
            )
            .execution_options(synchronize_session=False)
        )
        return int(res.rowcount or 0) == 1

    def list_for_quiz(
        self,
        quiz_id: uuid.UUID,
        *,
        student_id: uuid.UUID | None,
        offset: int,
        limit: int,
    ) -> tuple[list[AttemptRecord], int]:
        conds = [QuizAttempt.quiz_id == quiz_id]
        if student_id is not None:
            conds.append(QuizAttempt.student_id == student_id)

        total = self.db.scalar(select(func.count(QuizAttempt.id)).where(*conds)) or 0
        rows = self.db.scalars(
            select(QuizAttempt)
            .where(*conds)
            .order_by(QuizAttempt.started_at.desc(), QuizAttempt.attempt_no.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return [_record(r) for r in rows], int(total)


class AttemptLedger:
    """Creates attempts, numbers them per (student, quiz) and finalizes them."""

    def __init__(self, *, definitions: QuizDefinitionReader, attempts: AttemptStore, uow: UnitOfWork):
        self.definitions = definitions
        self.attempts = attempts
        self.uow = uow

    def start_attempt(self, quiz_id: uuid.UUID, student_id: uuid.UUID) -> StartedAttempt:
        quiz = self.definitions.load_definition(quiz_id, with_questions=False)
        if quiz is None:
            raise NotFoundError("quiz not found")
        if not quiz.is_published:
            raise ForbiddenError("quiz is not published")

        # Count and insert share one transaction; the unique constraint on
        # (student_id, quiz_id, attempt_no) rejects a concurrent duplicate.
        try:
            attempt_no = self.attempts.count_for(quiz_id=quiz.id, student_id=student_id) + 1
            record = self.attempts.create(quiz_id=quiz.id, student_id=student_id, attempt_no=attempt_no)
            self.uow.commit()
        except Exception:
            self.uow.rollback()
            raise

        logger.info(
            "quiz attempt started attempt_id=%s quiz_id=%s student_id=%s attempt_no=%s",
            record.id,
            quiz.id,
            student_id,
            record.attempt_no,
        )
        return StartedAttempt(
            attempt_id=record.id,
            quiz_id=quiz.id,
            attempt_no=record.attempt_no,
            started_at=record.started_at,
            time_limit_minutes=quiz.time_limit_minutes,
        )

    def get_attempt(self, attempt_id: uuid.UUID) -> AttemptRecord:
        record = self.attempts.get(attempt_id)
        if record is None:
            raise NotFoundError("attempt not found")
        return record

    def mark_submitted(self, attempt_id: uuid.UUID, *, score: Decimal, completed_at: datetime) -> None:
        """IN_PROGRESS -> SUBMITTED, once. Does not commit."""
        if not self.attempts.transition_to_submitted(attempt_id, score=score, completed_at=completed_at):
            logger.warning("rejected double submission attempt_id=%s", attempt_id)
            raise BadRequestError("attempt already submitted", error_code="attempt_already_submitted")

    def list_attempts(
        self,
        quiz_id: uuid.UUID,
        *,
        caller_id: uuid.UUID,
        caller_role: UserRole,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[AttemptRecord], int]:
        quiz = self.definitions.load_definition(quiz_id, with_questions=False)
        if quiz is None:
            raise NotFoundError("quiz not found")

        manager = can_manage_quiz(self.definitions, quiz.id, caller_id=caller_id, caller_role=caller_role)
        page = max(1, int(page))
        limit = max(1, int(limit))
        return self.attempts.list_for_quiz(
            quiz.id,
            student_id=None if manager else caller_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
