from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class QuizStartResponse(BaseModel):
    attempt_id: str
    quiz_id: str
    attempt_no: int
    started_at: datetime
    time_limit_minutes: int | None


class QuizSubmitAnswer(BaseModel):
    question_id: str
    option_id: str | None = None
    option_ids: list[str] | None = None
    answer_text: str | None = None


class QuizSubmitRequest(BaseModel):
    answers: list[QuizSubmitAnswer] = Field(min_length=1)


class QuizAnswerResult(BaseModel):
    question_id: str
    question_content: str
    question_points: int
    your_answer: str | list[str]
    correct_answer: str | list[str]
    is_correct: bool
    points_earned: int


class QuizResult(BaseModel):
    attempt_id: str
    quiz_id: str
    quiz_title: str
    score: float
    total_points: int
    percentage: float
    status: str
    started_at: datetime
    completed_at: datetime | None
    time_taken_seconds: int
    answers: list[QuizAnswerResult]


class AttemptSummary(BaseModel):
    attempt_id: str
    quiz_id: str
    student_id: str
    attempt_no: int
    status: str
    started_at: datetime
    completed_at: datetime | None
    score: float | None


class AttemptListResponse(BaseModel):
    data: list[AttemptSummary]
    total: int
    page: int
    limit: int
    total_pages: int


class QuizCreateRequest(BaseModel):
    title: str = Field(min_length=3, max_length=255)
    description: str | None = None
    time_limit_minutes: int | None = Field(default=None, ge=0)
    is_published: bool = False


class QuizUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=255)
    description: str | None = None
    time_limit_minutes: int | None = Field(default=None, ge=0)
    is_published: bool | None = None


class QuizPublic(BaseModel):
    id: str
    lesson_id: str
    title: str
    description: str | None
    time_limit_minutes: int | None
    is_published: bool
    created_at: datetime
    updated_at: datetime


class QuizListResponse(BaseModel):
    data: list[QuizPublic]
    total: int
    page: int
    limit: int
    total_pages: int
