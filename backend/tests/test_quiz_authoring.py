import uuid

import pytest

from conftest import add_question, headers_for, make_quiz, make_user
from coursehub.core.errors import BadRequestError
from coursehub.models.quiz import QuestionType
from coursehub.models.user import UserRole
from coursehub.schemas.question import OptionIn
from coursehub.services.quiz_authoring import validate_options


def _opts(*flags: bool) -> list[OptionIn]:
    return [OptionIn(content=f"opt {i}", is_correct=f) for i, f in enumerate(flags, start=1)]


@pytest.mark.parametrize(
    "type_, options",
    [
        (QuestionType.MCQ_SINGLE, _opts(True)),
        (QuestionType.MCQ_SINGLE, _opts(True, True)),
        (QuestionType.MCQ_SINGLE, _opts(False, False)),
        (QuestionType.MCQ_MULTI, _opts(False, False, False)),
        (QuestionType.TRUE_FALSE, _opts(True, False, False)),
        (QuestionType.TRUE_FALSE, _opts(True, True)),
        (QuestionType.TEXT, _opts(True, False)),
    ],
)
def test_invalid_option_sets(type_, options):
    with pytest.raises(BadRequestError):
        validate_options(type_, options)


@pytest.mark.parametrize(
    "type_, options",
    [
        (QuestionType.MCQ_SINGLE, _opts(False, True, False)),
        (QuestionType.MCQ_MULTI, _opts(True, False, True)),
        (QuestionType.TRUE_FALSE, _opts(False, True)),
        (QuestionType.TEXT, []),
    ],
)
def test_valid_option_sets(type_, options):
    validate_options(type_, options)


def test_teacher_creates_and_publishes_quiz(client, db, teacher, lesson):
    h = headers_for(teacher)
    r = client.post(f"/quizzes/lesson/{lesson.id}", json={"title": "Week 1", "time_limit_minutes": 20}, headers=h)
    assert r.status_code == 200, r.text
    quiz = r.json()
    assert quiz["is_published"] is False

    # drafts are hidden from the public endpoints
    assert client.get(f"/quizzes/{quiz['id']}").status_code == 403
    assert client.get(f"/quizzes/manage/{quiz['id']}", headers=h).status_code == 200

    r = client.patch(f"/quizzes/{quiz['id']}", json={"is_published": True}, headers=h)
    assert r.status_code == 200
    assert r.json()["is_published"] is True
    assert r.json()["title"] == "Week 1"

    r = client.get(f"/quizzes?lesson_id={lesson.id}")
    assert r.status_code == 200
    assert [q["id"] for q in r.json()["data"]] == [quiz["id"]]
    assert r.json()["total_pages"] == 1


def test_other_teacher_and_students_cannot_manage(client, db, lesson):
    student = make_user(db)
    outsider = make_user(db, role=UserRole.teacher)
    quiz = make_quiz(db, lesson=lesson)

    assert client.post(f"/quizzes/lesson/{lesson.id}", json={"title": "Nope"}, headers=headers_for(student)).status_code == 403
    assert client.post(f"/quizzes/lesson/{lesson.id}", json={"title": "Nope"}, headers=headers_for(outsider)).status_code == 403
    assert client.patch(f"/quizzes/{quiz.id}", json={"title": "Mine"}, headers=headers_for(outsider)).status_code == 403
    assert client.delete(f"/quizzes/{quiz.id}", headers=headers_for(outsider)).status_code == 403


def test_admin_can_manage_any_quiz(client, db, admin, lesson):
    quiz = make_quiz(db, lesson=lesson)
    r = client.patch(f"/quizzes/{quiz.id}", json={"title": "Renamed"}, headers=headers_for(admin))
    assert r.status_code == 200
    assert r.json()["title"] == "Renamed"


def test_create_quiz_for_missing_lesson(client, teacher):
    r = client.post(f"/quizzes/lesson/{uuid.uuid4()}", json={"title": "Ghost"}, headers=headers_for(teacher))
    assert r.status_code == 404


def test_question_crud_and_answer_key_visibility(client, db, teacher, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    h = headers_for(teacher)

    r = client.post(
        f"/quizzes/{quiz.id}/questions",
        json={
            "content": "Pick the prime",
            "type": "MCQ_SINGLE",
            "points": 2,
            "options": [{"content": "4", "is_correct": False}, {"content": "7", "is_correct": True}],
        },
        headers=h,
    )
    assert r.status_code == 200, r.text
    question = r.json()
    assert question["order_index"] == 1
    assert [o["is_correct"] for o in question["options"]] == [False, True]

    r = client.post(
        f"/quizzes/{quiz.id}/questions",
        json={"content": "Explain why", "type": "TEXT", "points": 1},
        headers=h,
    )
    assert r.status_code == 200
    assert r.json()["order_index"] == 2

    public = client.get(f"/quizzes/{quiz.id}/questions", headers=headers_for(student)).json()
    assert len(public) == 2
    assert all(o["is_correct"] is None for o in public[0]["options"])

    managed = client.get(f"/quizzes/{quiz.id}/questions/{question['id']}", headers=h).json()
    assert managed["options"][1]["is_correct"] is True

    r = client.patch(
        f"/quizzes/{quiz.id}/questions/{question['id']}",
        json={"options": [{"content": "9", "is_correct": False}, {"content": "11", "is_correct": True}, {"content": "15", "is_correct": False}]},
        headers=h,
    )
    assert r.status_code == 200
    assert [o["content"] for o in r.json()["options"]] == ["9", "11", "15"]

    r = client.patch(f"/quizzes/{quiz.id}/questions/{question['id']}", json={"type": "TRUE_FALSE"}, headers=h)
    assert r.status_code == 400
    assert r.json()["error_code"] == "invalid_options"

    r = client.delete(f"/quizzes/{quiz.id}/questions/{question['id']}", headers=h)
    assert r.status_code == 200
    assert client.get(f"/quizzes/{quiz.id}/questions/{question['id']}", headers=h).status_code == 404


def test_invalid_question_is_rejected(client, db, teacher, lesson):
    quiz = make_quiz(db, lesson=lesson)
    r = client.post(
        f"/quizzes/{quiz.id}/questions",
        json={
            "content": "Which are even?",
            "type": "MCQ_MULTI",
            "options": [{"content": "1", "is_correct": False}, {"content": "3", "is_correct": False}],
        },
        headers=headers_for(teacher),
    )
    assert r.status_code == 400
    assert r.json()["error_code"] == "invalid_options"


def test_draft_questions_hidden_from_students(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson, published=False)
    add_question(db, quiz=quiz, type=QuestionType.TEXT, points=1)
    assert client.get(f"/quizzes/{quiz.id}/questions", headers=headers_for(student)).status_code == 403
    assert client.get(f"/quizzes/{quiz.id}/questions").status_code == 403


def test_delete_quiz_removes_attempts(client, db, teacher, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, _ = add_question(db, quiz=quiz, type=QuestionType.TEXT, points=1)
    r = client.post(f"/quizzes/{quiz.id}/start", headers=headers_for(student))
    attempt_id = r.json()["attempt_id"]
    client.post(
        f"/quizzes/attempts/{attempt_id}/submit",
        json={"answers": [{"question_id": str(q.id), "answer_text": "done"}]},
        headers=headers_for(student),
    )

    assert client.delete(f"/quizzes/{quiz.id}", headers=headers_for(teacher)).status_code == 200
    assert client.get(f"/quizzes/manage/{quiz.id}", headers=headers_for(teacher)).status_code == 404
    assert client.get(f"/quizzes/attempts/{attempt_id}/result", headers=headers_for(student)).status_code == 404
