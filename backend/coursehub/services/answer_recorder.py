from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from coursehub.core.errors import BadRequestError, ForbiddenError, NotFoundError
from coursehub.db.base import utcnow
from coursehub.models.attempt import QuizAttemptAnswer, QuizAttemptStatus
from coursehub.models.quiz import QuestionType
from coursehub.schemas.quiz import QuizResult
from coursehub.services.attempt_ledger import AttemptLedger, UnitOfWork
from coursehub.services.quiz_definitions import QuestionDefinition, QuizDefinition, QuizDefinitionReader
from coursehub.services.quiz_scoring import OPTION_TYPES, ScoringEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: str | uuid.UUID
    option_id: str | uuid.UUID | None = None
    option_ids: Sequence[str | uuid.UUID] | None = None
    answer_text: str | None = None


@dataclass(frozen=True)
class AnswerFact:
    """One persisted answer row. MCQ_MULTI selections produce one fact per option."""

    question_id: uuid.UUID
    option_id: uuid.UUID | None = None
    answer_text: str | None = None
    is_correct: bool | None = None


class AnswerStore(Protocol):
    def replace_for_attempt(self, attempt_id: uuid.UUID, facts: Sequence[AnswerFact]) -> None: ...

    def list_for_attempt(self, attempt_id: uuid.UUID) -> list[AnswerFact]: ...


class SqlAnswerStore:
    def __init__(self, db: Session):
        self.db = db

    def replace_for_attempt(self, attempt_id: uuid.UUID, facts: Sequence[AnswerFact]) -> None:
        self.db.execute(delete(QuizAttemptAnswer).where(QuizAttemptAnswer.attempt_id == attempt_id))
        for f in facts:
            self.db.add(
                QuizAttemptAnswer(
                    attempt_id=attempt_id,
                    question_id=f.question_id,
                    option_id=f.option_id,
                    answer_text=f.answer_text,
                    is_correct=f.is_correct,
                )
            )
        self.db.flush()

    def list_for_attempt(self, attempt_id: uuid.UUID) -> list[AnswerFact]:
        rows = self.db.scalars(
            select(QuizAttemptAnswer)
            .where(QuizAttemptAnswer.attempt_id == attempt_id)
            .order_by(QuizAttemptAnswer.question_id, QuizAttemptAnswer.option_id)
        ).all()
        return [
            AnswerFact(
                question_id=r.question_id,
                option_id=r.option_id,
                answer_text=r.answer_text,
                is_correct=r.is_correct,
            )
            for r in rows
        ]


def _as_uuid(value) -> uuid.UUID | None:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _resolve_option(question: QuestionDefinition, raw_id) -> uuid.UUID:
    option_id = _as_uuid(raw_id)
    if option_id is None or question.option(option_id) is None:
        raise BadRequestError(f"option not in question: {raw_id}", error_code="option_not_in_question")
    return option_id


def build_answer_facts(definition: QuizDefinition, items: Sequence[SubmittedAnswer]) -> list[AnswerFact]:
    """Validate a submission against the definition and normalize it into rows.

    Missing selections are skipped (graded as unanswered). Anything that
    references a foreign question or option is rejected as a whole.
    """
    facts: list[AnswerFact] = []
    seen: set[uuid.UUID] = set()

    for item in items:
        question = None
        qid = _as_uuid(item.question_id)
        if qid is not None:
            question = definition.question(qid)
        if question is None:
            raise BadRequestError(f"question not in quiz: {item.question_id}", error_code="question_not_in_quiz")
        if question.id in seen:
            raise BadRequestError(f"duplicate answer for question: {question.id}", error_code="duplicate_answer")
        seen.add(question.id)

        if question.type in OPTION_TYPES:
            if not item.option_id:
                continue
            option_id = _resolve_option(question, item.option_id)
            facts.append(
                AnswerFact(
                    question_id=question.id,
                    option_id=option_id,
                    is_correct=question.option(option_id).is_correct,
                )
            )

        elif question.type == QuestionType.MCQ_MULTI:
            raw_ids = list(item.option_ids or [])
            if not raw_ids:
                continue
            selected = [_resolve_option(question, raw) for raw in raw_ids]
            if len(set(selected)) != len(selected):
                raise BadRequestError(
                    f"option selected more than once for question: {question.id}",
                    error_code="duplicate_option",
                )
            # No partial credit: the exact set of correct options or nothing.
            is_correct = frozenset(selected) == question.correct_option_ids
            facts.extend(
                AnswerFact(question_id=question.id, option_id=oid, is_correct=is_correct)
                for oid in sorted(selected, key=str)
            )

        else:
            if not item.answer_text:
                continue
            facts.append(AnswerFact(question_id=question.id, answer_text=item.answer_text, is_correct=None))

    return facts


class AnswerRecorder:
    def __init__(
        self,
        *,
        ledger: AttemptLedger,
        definitions: QuizDefinitionReader,
        answers: AnswerStore,
        engine: ScoringEngine,
        uow: UnitOfWork,
    ):
        self.ledger = ledger
        self.definitions = definitions
        self.answers = answers
        self.engine = engine
        self.uow = uow

    def submit_answers(
        self,
        attempt_id: uuid.UUID,
        student_id: uuid.UUID,
        items: Sequence[SubmittedAnswer],
    ) -> QuizResult:
        attempt = self.ledger.get_attempt(attempt_id)
        if attempt.student_id != student_id:
            raise ForbiddenError("not allowed to submit this attempt")
        if attempt.status == QuizAttemptStatus.SUBMITTED:
            raise BadRequestError("attempt already submitted", error_code="attempt_already_submitted")

        definition = self.definitions.load_definition(attempt.quiz_id)
        if definition is None:
            raise NotFoundError("quiz not found")
        if not definition.questions:
            raise BadRequestError("quiz has no questions", error_code="quiz_has_no_questions")

        facts = build_answer_facts(definition, items)

        # Replace rows and flip the status in one transaction; the conditional
        # status update loses cleanly to a concurrent submission.
        try:
            self.answers.replace_for_attempt(attempt.id, facts)
            sheet = self.engine.grade(definition, facts)
            self.ledger.mark_submitted(attempt.id, score=sheet.score, completed_at=utcnow())
            self.uow.commit()
        except Exception:
            self.uow.rollback()
            raise

        logger.info(
            "quiz attempt submitted attempt_id=%s quiz_id=%s score=%s/%s",
            attempt.id,
            definition.id,
            sheet.score,
            sheet.total_points,
        )
        return self.engine.calculate_result(attempt.id)
