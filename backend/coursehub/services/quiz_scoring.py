"""Deterministic grading of recorded quiz answers.

``ScoringEngine.grade`` is a pure function of a quiz definition and the
answer facts stored for one attempt. ``calculate_result`` reloads both from
the stores every time it is called, so a result can be rebuilt at any point
without trusting the denormalized ``quiz_attempts.score`` column.

Rules:
- MCQ_SINGLE / TRUE_FALSE: the stored row's ``is_correct`` decides.
- MCQ_MULTI: every row carries the correctness of the whole selection
  (exact set equality with the correct options, decided when recording).
- TEXT: stored for manual review, always 0 points.
- Unanswered questions earn 0 but still count towards ``total_points``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Sequence

from coursehub.core.errors import NotFoundError
from coursehub.models.quiz import QuestionType
from coursehub.services.quiz_definitions import QuestionDefinition, QuizDefinition, QuizDefinitionReader
from coursehub.services.quiz_results import present_result

if TYPE_CHECKING:
    from coursehub.schemas.quiz import QuizResult
    from coursehub.services.answer_recorder import AnswerFact, AnswerStore
    from coursehub.services.attempt_ledger import AttemptStore


_CENTS = Decimal("0.01")

OPTION_TYPES = frozenset({QuestionType.MCQ_SINGLE, QuestionType.TRUE_FALSE})


def round2(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def percentage_of(score: Decimal, total_points: int) -> Decimal:
    if total_points <= 0:
        return round2(Decimal(0))
    return round2(score * 100 / Decimal(total_points))


@dataclass(frozen=True)
class QuestionScore:
    question_id: uuid.UUID
    question_content: str
    question_points: int
    your_answer: str | list[str]
    correct_answer: str | list[str]
    is_correct: bool
    points_earned: int


@dataclass(frozen=True)
class ScoreSheet:
    entries: tuple[QuestionScore, ...]
    score: Decimal
    total_points: int
    percentage: Decimal


def _score_question(question: QuestionDefinition, rows: Sequence[AnswerFact]) -> QuestionScore:
    if question.type in OPTION_TYPES:
        chosen = rows[0] if rows else None
        chosen_option = question.option(chosen.option_id) if chosen and chosen.option_id else None
        correct = question.correct_options
        your_answer: str | list[str] = chosen_option.content if chosen_option else ""
        correct_answer: str | list[str] = correct[0].content if correct else ""
        is_correct = bool(chosen.is_correct) if chosen else False
    elif question.type == QuestionType.MCQ_MULTI:
        selected = {r.option_id for r in rows if r.option_id is not None}
        your_answer = [o.content for o in question.options if o.id in selected]
        correct_answer = [o.content for o in question.correct_options]
        is_correct = bool(rows[0].is_correct) if rows else False
    else:
        your_answer = (rows[0].answer_text or "") if rows else ""
        correct_answer = ""
        is_correct = False

    return QuestionScore(
        question_id=question.id,
        question_content=question.content,
        question_points=int(question.points),
        your_answer=your_answer,
        correct_answer=correct_answer,
        is_correct=is_correct,
        points_earned=int(question.points) if is_correct else 0,
    )


class ScoringEngine:
    def __init__(
        self,
        *,
        definitions: QuizDefinitionReader,
        attempts: AttemptStore,
        answers: AnswerStore,
    ):
        self.definitions = definitions
        self.attempts = attempts
        self.answers = answers

    @staticmethod
    def grade(definition: QuizDefinition, facts: Sequence[AnswerFact]) -> ScoreSheet:
        by_question: dict[uuid.UUID, list[AnswerFact]] = {}
        for fact in facts:
            by_question.setdefault(fact.question_id, []).append(fact)

        ordered = sorted(definition.questions, key=lambda q: (q.order_index, str(q.id)))
        entries = tuple(_score_question(q, by_question.get(q.id, [])) for q in ordered)

        total_points = definition.total_points
        score = round2(Decimal(sum(e.points_earned for e in entries)))
        return ScoreSheet(
            entries=entries,
            score=score,
            total_points=total_points,
            percentage=percentage_of(score, total_points),
        )

    def calculate_result(self, attempt_id: uuid.UUID) -> QuizResult:
        attempt = self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("attempt not found")

        definition = self.definitions.load_definition(attempt.quiz_id)
        if definition is None:
            raise NotFoundError("quiz not found")

        sheet = self.grade(definition, self.answers.list_for_attempt(attempt.id))
        return present_result(attempt=attempt, definition=definition, sheet=sheet)
