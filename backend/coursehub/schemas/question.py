from __future__ import annotations

from pydantic import BaseModel, Field

from coursehub.models.quiz import QuestionType


class OptionIn(BaseModel):
    content: str = Field(min_length=1)
    is_correct: bool = False


class QuestionCreateRequest(BaseModel):
    content: str = Field(min_length=5)
    type: QuestionType
    points: int = Field(default=1, ge=1)
    order_index: int | None = None
    options: list[OptionIn] = Field(default_factory=list)


class QuestionUpdateRequest(BaseModel):
    content: str | None = Field(default=None, min_length=5)
    type: QuestionType | None = None
    points: int | None = Field(default=None, ge=1)
    order_index: int | None = None
    options: list[OptionIn] | None = None


class OptionPublic(BaseModel):
    id: str
    content: str
    order_index: int
    # Only revealed to the quiz owner and admins.
    is_correct: bool | None = None


class QuestionPublic(BaseModel):
    id: str
    quiz_id: str
    content: str
    type: QuestionType
    points: int
    order_index: int
    options: list[OptionPublic]
