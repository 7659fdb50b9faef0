"""Read-only snapshots of quiz definitions.

Grading never walks live ORM relations: a quiz, its ordered questions and
their ordered options are loaded once per operation into frozen dataclasses
and looked up by id.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.models.course import Course, Lesson
from coursehub.models.quiz import Question, QuestionOption, QuestionType, Quiz
from coursehub.models.user import UserRole


@dataclass(frozen=True)
class OptionDefinition:
    id: uuid.UUID
    content: str
    is_correct: bool
    order_index: int


@dataclass(frozen=True)
class QuestionDefinition:
    id: uuid.UUID
    type: QuestionType
    content: str
    points: int
    order_index: int
    options: tuple[OptionDefinition, ...] = ()

    def option(self, option_id: uuid.UUID) -> OptionDefinition | None:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    @property
    def correct_options(self) -> tuple[OptionDefinition, ...]:
        return tuple(o for o in self.options if o.is_correct)

    @property
    def correct_option_ids(self) -> frozenset[uuid.UUID]:
        return frozenset(o.id for o in self.options if o.is_correct)


@dataclass(frozen=True)
class QuizDefinition:
    id: uuid.UUID
    lesson_id: uuid.UUID
    title: str
    time_limit_minutes: int | None
    is_published: bool
    questions: tuple[QuestionDefinition, ...] = ()
    _by_id: dict[uuid.UUID, QuestionDefinition] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._by_id.update({q.id: q for q in self.questions})

    def question(self, question_id: uuid.UUID) -> QuestionDefinition | None:
        return self._by_id.get(question_id)

    @property
    def total_points(self) -> int:
        return sum(int(q.points or 0) for q in self.questions)


class QuizDefinitionReader(Protocol):
    def load_definition(self, quiz_id: uuid.UUID, *, with_questions: bool = True) -> QuizDefinition | None: ...

    def get_owner_teacher_id(self, quiz_id: uuid.UUID) -> uuid.UUID | None: ...


class SqlQuizDefinitionReader:
    def __init__(self, db: Session):
        self.db = db

    def load_definition(self, quiz_id: uuid.UUID, *, with_questions: bool = True) -> QuizDefinition | None:
        quiz = self.db.scalar(select(Quiz).where(Quiz.id == quiz_id))
        if quiz is None:
            return None

        questions: tuple[QuestionDefinition, ...] = ()
        if with_questions:
            rows = self.db.scalars(
                select(Question).where(Question.quiz_id == quiz.id).order_by(Question.order_index, Question.id)
            ).all()
            options_by_question: dict[uuid.UUID, list[OptionDefinition]] = {}
            if rows:
                opts = self.db.scalars(
                    select(QuestionOption)
                    .where(QuestionOption.question_id.in_([q.id for q in rows]))
                    .order_by(QuestionOption.order_index, QuestionOption.id)
                ).all()
                for o in opts:
                    options_by_question.setdefault(o.question_id, []).append(
                        OptionDefinition(
                            id=o.id,
                            content=o.content or "",
                            is_correct=bool(o.is_correct),
                            order_index=int(o.order_index or 0),
                        )
                    )
            questions = tuple(
                QuestionDefinition(
                    id=q.id,
                    type=q.type,
                    content=q.content or "",
                    points=int(q.points or 0),
                    order_index=int(q.order_index or 0),
                    options=tuple(options_by_question.get(q.id, [])),
                )
                for q in rows
            )

        return QuizDefinition(
            id=quiz.id,
            lesson_id=quiz.lesson_id,
            title=quiz.title,
            time_limit_minutes=quiz.time_limit_minutes,
            is_published=bool(quiz.is_published),
            questions=questions,
        )

    def get_owner_teacher_id(self, quiz_id: uuid.UUID) -> uuid.UUID | None:
        return self.db.scalar(
            select(Course.teacher_id)
            .join(Lesson, Lesson.course_id == Course.id)
            .join(Quiz, Quiz.lesson_id == Lesson.id)
            .where(Quiz.id == quiz_id)
        )


def can_manage_quiz(
    reader: QuizDefinitionReader,
    quiz_id: uuid.UUID,
    *,
    caller_id: uuid.UUID,
    caller_role: UserRole,
) -> bool:
    if caller_role == UserRole.admin:
        return True
    teacher_id = reader.get_owner_teacher_id(quiz_id)
    return teacher_id is not None and teacher_id == caller_id
