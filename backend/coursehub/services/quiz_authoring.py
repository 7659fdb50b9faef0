from __future__ import annotations

import logging
import math
import uuid
from typing import Any, Dict, List, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from coursehub.core.errors import BadRequestError, ForbiddenError, NotFoundError
from coursehub.models.attempt import QuizAttempt, QuizAttemptAnswer
from coursehub.models.course import Course, Lesson
from coursehub.models.quiz import Question, QuestionOption, QuestionType, Quiz
from coursehub.models.user import User, UserRole
from coursehub.schemas.question import OptionIn, QuestionCreateRequest, QuestionUpdateRequest
from coursehub.schemas.quiz import QuizCreateRequest, QuizUpdateRequest
from coursehub.services.quiz_definitions import SqlQuizDefinitionReader, can_manage_quiz

logger = logging.getLogger(__name__)


def validate_options(question_type: QuestionType, options: Sequence[OptionIn]) -> None:
    """Authoring-time option rules; grading relies on them without re-checking."""
    if question_type == QuestionType.TEXT:
        if options:
            raise BadRequestError("TEXT questions do not take options", error_code="invalid_options")
        return

    if len(options) < 2:
        raise BadRequestError("at least 2 options are required", error_code="invalid_options")

    correct = sum(1 for o in options if o.is_correct)
    if question_type == QuestionType.MCQ_SINGLE and correct != 1:
        raise BadRequestError("MCQ_SINGLE needs exactly 1 correct option", error_code="invalid_options")
    if question_type == QuestionType.MCQ_MULTI and correct < 1:
        raise BadRequestError("MCQ_MULTI needs at least 1 correct option", error_code="invalid_options")
    if question_type == QuestionType.TRUE_FALSE:
        if len(options) != 2:
            raise BadRequestError("TRUE_FALSE needs exactly 2 options", error_code="invalid_options")
        if correct != 1:
            raise BadRequestError("TRUE_FALSE needs exactly 1 correct option", error_code="invalid_options")


def quiz_public(q: Quiz) -> Dict[str, Any]:
    return {
        "id": str(q.id),
        "lesson_id": str(q.lesson_id),
        "title": q.title,
        "description": q.description,
        "time_limit_minutes": q.time_limit_minutes,
        "is_published": bool(q.is_published),
        "created_at": q.created_at,
        "updated_at": q.updated_at,
    }


class QuizAuthoringService:
    def __init__(self, db: Session):
        self.db = db
        self.definitions = SqlQuizDefinitionReader(db)

    # ---- permissions ----

    def _can_manage(self, quiz_id: uuid.UUID, user: User | None) -> bool:
        if user is None:
            return False
        return can_manage_quiz(self.definitions, quiz_id, caller_id=user.id, caller_role=user.role)

    def _ensure_can_manage_lesson(self, lesson_id: uuid.UUID, user: User) -> Lesson:
        lesson = self.db.scalar(select(Lesson).where(Lesson.id == lesson_id))
        if lesson is None:
            raise NotFoundError("lesson not found")
        course = self.db.scalar(select(Course).where(Course.id == lesson.course_id))
        if course is None:
            raise NotFoundError("course not found")
        if user.role != UserRole.admin and course.teacher_id != user.id:
            raise ForbiddenError("not allowed to manage quizzes of this lesson")
        return lesson

    def _ensure_can_manage_quiz(self, quiz_id: uuid.UUID, user: User) -> Quiz:
        quiz = self.db.scalar(select(Quiz).where(Quiz.id == quiz_id))
        if quiz is None:
            raise NotFoundError("quiz not found")
        if not self._can_manage(quiz.id, user):
            raise ForbiddenError("not allowed to manage this quiz")
        return quiz

    def _ensure_can_read_quiz(self, quiz_id: uuid.UUID, user: User | None) -> tuple[Quiz, bool]:
        quiz = self.db.scalar(select(Quiz).where(Quiz.id == quiz_id))
        if quiz is None:
            raise NotFoundError("quiz not found")
        manager = self._can_manage(quiz.id, user)
        if not quiz.is_published and not manager:
            raise ForbiddenError("quiz is not published")
        return quiz, manager

    # ---- quizzes ----

    def create_quiz(self, lesson_id: uuid.UUID, payload: QuizCreateRequest, user: User) -> Dict[str, Any]:
        lesson = self._ensure_can_manage_lesson(lesson_id, user)
        quiz = Quiz(
            lesson_id=lesson.id,
            title=payload.title,
            description=payload.description,
            time_limit_minutes=payload.time_limit_minutes,
            is_published=bool(payload.is_published),
        )
        self.db.add(quiz)
        self.db.commit()
        self.db.refresh(quiz)
        logger.info("quiz created quiz_id=%s lesson_id=%s by=%s", quiz.id, lesson.id, user.id)
        return quiz_public(quiz)

    def list_public_quizzes(self, *, lesson_id: uuid.UUID | None, page: int, limit: int) -> Dict[str, Any]:
        page = max(1, int(page))
        limit = max(1, int(limit))
        conds = [Quiz.is_published == True]  # noqa: E712
        if lesson_id is not None:
            conds.append(Quiz.lesson_id == lesson_id)

        total = int(self.db.scalar(select(func.count(Quiz.id)).where(*conds)) or 0)
        rows = self.db.scalars(
            select(Quiz).where(*conds).order_by(Quiz.created_at.desc()).offset((page - 1) * limit).limit(limit)
        ).all()
        return {
            "data": [quiz_public(q) for q in rows],
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    def get_public_quiz(self, quiz_id: uuid.UUID) -> Dict[str, Any]:
        quiz = self.db.scalar(select(Quiz).where(Quiz.id == quiz_id))
        if quiz is None:
            raise NotFoundError("quiz not found")
        if not quiz.is_published:
            raise ForbiddenError("quiz is not published")
        return quiz_public(quiz)

    def get_quiz_for_manage(self, quiz_id: uuid.UUID, user: User) -> Dict[str, Any]:
        return quiz_public(self._ensure_can_manage_quiz(quiz_id, user))

    def update_quiz(self, quiz_id: uuid.UUID, payload: QuizUpdateRequest, user: User) -> Dict[str, Any]:
        quiz = self._ensure_can_manage_quiz(quiz_id, user)
        changes = payload.model_dump(exclude_unset=True)
        if "title" in changes and changes["title"] is None:
            raise BadRequestError("title cannot be empty")
        for key, value in changes.items():
            setattr(quiz, key, value)
        self.db.commit()
        self.db.refresh(quiz)
        return quiz_public(quiz)

    def delete_quiz(self, quiz_id: uuid.UUID, user: User) -> Dict[str, Any]:
        quiz = self._ensure_can_manage_quiz(quiz_id, user)

        attempt_ids = select(QuizAttempt.id).where(QuizAttempt.quiz_id == quiz.id)
        question_ids = select(Question.id).where(Question.quiz_id == quiz.id)
        self.db.execute(delete(QuizAttemptAnswer).where(QuizAttemptAnswer.attempt_id.in_(attempt_ids)))
        self.db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id == quiz.id))
        self.db.execute(delete(QuestionOption).where(QuestionOption.question_id.in_(question_ids)))
        self.db.execute(delete(Question).where(Question.quiz_id == quiz.id))
        self.db.execute(delete(Quiz).where(Quiz.id == quiz.id))
        self.db.commit()
        logger.info("quiz deleted quiz_id=%s by=%s", quiz_id, user.id)
        return {"ok": True}

    # ---- questions ----

    def _options_of(self, question_ids: List[uuid.UUID]) -> Dict[uuid.UUID, List[QuestionOption]]:
        if not question_ids:
            return {}
        rows = self.db.scalars(
            select(QuestionOption)
            .where(QuestionOption.question_id.in_(question_ids))
            .order_by(QuestionOption.order_index, QuestionOption.id)
        ).all()
        res: Dict[uuid.UUID, List[QuestionOption]] = {}
        for o in rows:
            res.setdefault(o.question_id, []).append(o)
        return res

    def _question_public(self, q: Question, options: List[QuestionOption], *, reveal: bool) -> Dict[str, Any]:
        return {
            "id": str(q.id),
            "quiz_id": str(q.quiz_id),
            "content": q.content,
            "type": q.type,
            "points": int(q.points),
            "order_index": int(q.order_index),
            "options": [
                {
                    "id": str(o.id),
                    "content": o.content,
                    "order_index": int(o.order_index),
                    "is_correct": bool(o.is_correct) if reveal else None,
                }
                for o in options
            ],
        }

    def _get_question(self, quiz_id: uuid.UUID, question_id: uuid.UUID) -> Question:
        q = self.db.scalar(select(Question).where(Question.id == question_id, Question.quiz_id == quiz_id))
        if q is None:
            raise NotFoundError("question not found")
        return q

    def _add_options(self, question_id: uuid.UUID, options: Sequence[OptionIn]) -> None:
        for i, opt in enumerate(options, start=1):
            self.db.add(
                QuestionOption(
                    question_id=question_id,
                    content=opt.content,
                    is_correct=bool(opt.is_correct),
                    order_index=i,
                )
            )

    def _next_order_index(self, quiz_id: uuid.UUID) -> int:
        cur = self.db.scalar(select(func.max(Question.order_index)).where(Question.quiz_id == quiz_id))
        return int(cur or 0) + 1

    def list_questions(self, quiz_id: uuid.UUID, user: User | None) -> List[Dict[str, Any]]:
        quiz, manager = self._ensure_can_read_quiz(quiz_id, user)
        rows = self.db.scalars(
            select(Question).where(Question.quiz_id == quiz.id).order_by(Question.order_index, Question.id)
        ).all()
        opts = self._options_of([q.id for q in rows])
        return [self._question_public(q, opts.get(q.id, []), reveal=manager) for q in rows]

    def get_question(self, quiz_id: uuid.UUID, question_id: uuid.UUID, user: User | None) -> Dict[str, Any]:
        quiz, manager = self._ensure_can_read_quiz(quiz_id, user)
        q = self._get_question(quiz.id, question_id)
        return self._question_public(q, self._options_of([q.id]).get(q.id, []), reveal=manager)

    def create_question(self, quiz_id: uuid.UUID, payload: QuestionCreateRequest, user: User) -> Dict[str, Any]:
        quiz = self._ensure_can_manage_quiz(quiz_id, user)
        validate_options(payload.type, payload.options)

        order_index = payload.order_index if payload.order_index is not None else self._next_order_index(quiz.id)
        q = Question(
            quiz_id=quiz.id,
            type=payload.type,
            content=payload.content,
            points=int(payload.points),
            order_index=int(order_index),
        )
        self.db.add(q)
        self.db.flush()
        self._add_options(q.id, payload.options)
        self.db.commit()
        self.db.refresh(q)
        return self._question_public(q, self._options_of([q.id]).get(q.id, []), reveal=True)

    def update_question(
        self,
        quiz_id: uuid.UUID,
        question_id: uuid.UUID,
        payload: QuestionUpdateRequest,
        user: User,
    ) -> Dict[str, Any]:
        quiz = self._ensure_can_manage_quiz(quiz_id, user)
        q = self._get_question(quiz.id, question_id)

        new_type = payload.type or q.type
        if payload.options is not None:
            new_options = list(payload.options)
        else:
            new_options = [
                OptionIn(content=o.content, is_correct=bool(o.is_correct))
                for o in self._options_of([q.id]).get(q.id, [])
            ]
        validate_options(new_type, new_options)

        if payload.content is not None:
            q.content = payload.content
        if payload.type is not None:
            q.type = payload.type
        if payload.points is not None:
            q.points = int(payload.points)
        if payload.order_index is not None:
            q.order_index = int(payload.order_index)

        if payload.options is not None:
            # Options are re-created; answer rows pointing at old ones keep their recorded correctness.
            self.db.execute(delete(QuestionOption).where(QuestionOption.question_id == q.id))
            self._add_options(q.id, payload.options)

        self.db.commit()
        self.db.refresh(q)
        return self._question_public(q, self._options_of([q.id]).get(q.id, []), reveal=True)

    def delete_question(self, quiz_id: uuid.UUID, question_id: uuid.UUID, user: User) -> Dict[str, Any]:
        quiz = self._ensure_can_manage_quiz(quiz_id, user)
        q = self._get_question(quiz.id, question_id)
        self.db.execute(delete(QuizAttemptAnswer).where(QuizAttemptAnswer.question_id == q.id))
        self.db.execute(delete(QuestionOption).where(QuestionOption.question_id == q.id))
        self.db.execute(delete(Question).where(Question.id == q.id))
        self.db.commit()
        return {"ok": True}
