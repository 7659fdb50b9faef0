import uuid

from sqlalchemy import func, select

from conftest import add_question, headers_for, make_lesson, make_quiz, make_user
from coursehub.models.attempt import QuizAttempt, QuizAttemptAnswer, QuizAttemptStatus
from coursehub.models.quiz import QuestionType
from coursehub.models.user import UserRole
from coursehub.services.attempt_ledger import SqlAttemptStore


def _start(client, quiz_id, user) -> dict:
    r = client.post(f"/quizzes/{quiz_id}/start", headers=headers_for(user))
    assert r.status_code == 200, r.text
    return r.json()


def _submit(client, attempt_id, user, answers):
    return client.post(
        f"/quizzes/attempts/{attempt_id}/submit",
        json={"answers": answers},
        headers=headers_for(user),
    )


def test_start_numbers_attempts_per_student(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson, time_limit_minutes=15)
    other = make_user(db)

    first = _start(client, quiz.id, student)
    second = _start(client, quiz.id, student)
    theirs = _start(client, quiz.id, other)

    assert first["attempt_no"] == 1
    assert second["attempt_no"] == 2
    assert theirs["attempt_no"] == 1
    assert first["time_limit_minutes"] == 15
    assert first["quiz_id"] == str(quiz.id)


def test_start_requires_published_existing_quiz(client, db, lesson, student):
    draft = make_quiz(db, lesson=lesson, published=False)

    r = client.post(f"/quizzes/{draft.id}/start", headers=headers_for(student))
    assert r.status_code == 403
    assert r.json()["ok"] is False
    assert r.json()["error_code"] == "forbidden"

    r = client.post(f"/quizzes/{uuid.uuid4()}/start", headers=headers_for(student))
    assert r.status_code == 404

    r = client.post("/quizzes/not-a-uuid/start", headers=headers_for(student))
    assert r.status_code == 400

    r = client.post(f"/quizzes/{draft.id}/start")
    assert r.status_code == 401


def test_single_choice_submission(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, opts = add_question(db, quiz=quiz, type=QuestionType.MCQ_SINGLE, points=2, options=[("A", True), ("B", False)])
    attempt = _start(client, quiz.id, student)

    r = _submit(client, attempt["attempt_id"], student, [{"question_id": str(q.id), "option_id": str(opts[0].id)}])
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["score"] == 2
    assert body["total_points"] == 2
    assert body["percentage"] == 100
    assert body["status"] == "SUBMITTED"
    assert body["answers"][0]["your_answer"] == "A"
    assert body["answers"][0]["is_correct"] is True


def test_multi_choice_needs_the_exact_set(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, (a, b, c) = add_question(
        db, quiz=quiz, type=QuestionType.MCQ_MULTI, points=3, options=[("A", True), ("B", False), ("C", True)]
    )

    attempt = _start(client, quiz.id, student)
    r = _submit(client, attempt["attempt_id"], student, [{"question_id": str(q.id), "option_ids": [str(a.id)]}])
    assert r.status_code == 200
    assert r.json()["answers"][0]["points_earned"] == 0

    attempt = _start(client, quiz.id, student)
    r = _submit(
        client, attempt["attempt_id"], student, [{"question_id": str(q.id), "option_ids": [str(a.id), str(c.id)]}]
    )
    assert r.status_code == 200
    answer = r.json()["answers"][0]
    assert answer["points_earned"] == 3
    assert answer["your_answer"] == ["A", "C"]
    assert answer["correct_answer"] == ["A", "C"]

    rows = db.scalars(
        select(QuizAttemptAnswer).where(QuizAttemptAnswer.attempt_id == uuid.UUID(attempt["attempt_id"]))
    ).all()
    assert len(rows) == 2


def test_partial_score_percentage(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q1, tf = add_question(db, quiz=quiz, type=QuestionType.TRUE_FALSE, points=1, options=[("True", True), ("False", False)])
    add_question(
        db, quiz=quiz, type=QuestionType.MCQ_SINGLE, points=4, options=[("X", True), ("Y", False)], order_index=2
    )
    attempt = _start(client, quiz.id, student)

    r = _submit(client, attempt["attempt_id"], student, [{"question_id": str(q1.id), "option_id": str(tf[0].id)}])
    assert r.status_code == 200
    body = r.json()
    assert body["score"] == 1
    assert body["total_points"] == 5
    assert body["percentage"] == 20
    assert len(body["answers"]) == 2


def test_double_submit_is_rejected(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, opts = add_question(db, quiz=quiz, type=QuestionType.MCQ_SINGLE, points=1, options=[("A", True), ("B", False)])
    attempt = _start(client, quiz.id, student)

    r = _submit(client, attempt["attempt_id"], student, [{"question_id": str(q.id), "option_id": str(opts[0].id)}])
    assert r.status_code == 200

    r = _submit(client, attempt["attempt_id"], student, [{"question_id": str(q.id), "option_id": str(opts[1].id)}])
    assert r.status_code == 400
    assert r.json()["error_code"] == "attempt_already_submitted"

    row = db.scalar(select(QuizAttempt).where(QuizAttempt.id == uuid.UUID(attempt["attempt_id"])))
    assert float(row.score) == 1.0


def test_invalid_submission_leaves_attempt_in_progress(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, opts = add_question(db, quiz=quiz, type=QuestionType.MCQ_SINGLE, points=1, options=[("A", True), ("B", False)])
    other_quiz = make_quiz(db, lesson=lesson)
    foreign, _ = add_question(db, quiz=other_quiz, type=QuestionType.TEXT, points=1)
    attempt = _start(client, quiz.id, student)

    r = _submit(
        client,
        attempt["attempt_id"],
        student,
        [
            {"question_id": str(q.id), "option_id": str(opts[0].id)},
            {"question_id": str(foreign.id), "answer_text": "nope"},
        ],
    )
    assert r.status_code == 400
    assert r.json()["error_code"] == "question_not_in_quiz"

    r = client.get(f"/quizzes/attempts/{attempt['attempt_id']}/result", headers=headers_for(student))
    assert r.status_code == 200
    assert r.json()["status"] == "IN_PROGRESS"
    assert r.json()["score"] == 0

    r = _submit(client, attempt["attempt_id"], student, [])
    assert r.status_code == 422


def test_other_student_cannot_submit(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, _ = add_question(db, quiz=quiz, type=QuestionType.TEXT, points=1)
    attempt = _start(client, quiz.id, student)
    intruder = make_user(db)

    r = _submit(client, attempt["attempt_id"], intruder, [{"question_id": str(q.id), "answer_text": "hi"}])
    assert r.status_code == 403


def test_result_is_stable_and_access_controlled(client, db, teacher, lesson, student, admin):
    quiz = make_quiz(db, lesson=lesson)
    q, opts = add_question(db, quiz=quiz, type=QuestionType.MCQ_SINGLE, points=2, options=[("A", True), ("B", False)])
    attempt = _start(client, quiz.id, student)
    _submit(client, attempt["attempt_id"], student, [{"question_id": str(q.id), "option_id": str(opts[1].id)}])

    url = f"/quizzes/attempts/{attempt['attempt_id']}/result"
    first = client.get(url, headers=headers_for(student)).json()
    second = client.get(url, headers=headers_for(student)).json()
    assert first == second
    assert first["answers"][0]["your_answer"] == "B"
    assert first["answers"][0]["correct_answer"] == "A"

    assert client.get(url, headers=headers_for(teacher)).status_code == 200
    assert client.get(url, headers=headers_for(admin)).status_code == 200

    stranger = make_user(db, role=UserRole.teacher)
    assert client.get(url, headers=headers_for(stranger)).status_code == 403
    assert client.get(url, headers=headers_for(make_user(db))).status_code == 403

    r = client.get(f"/quizzes/attempts/{uuid.uuid4()}/result", headers=headers_for(student))
    assert r.status_code == 404


def test_list_attempts_scopes_by_caller(client, db, teacher, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    other = make_user(db)
    _start(client, quiz.id, student)
    _start(client, quiz.id, student)
    _start(client, quiz.id, other)

    mine = client.get(f"/quizzes/{quiz.id}/attempts", headers=headers_for(student)).json()
    assert mine["total"] == 2
    assert {a["student_id"] for a in mine["data"]} == {str(student.id)}

    everyone = client.get(f"/quizzes/{quiz.id}/attempts?limit=2", headers=headers_for(teacher)).json()
    assert everyone["total"] == 3
    assert len(everyone["data"]) == 2
    assert everyone["total_pages"] == 2


def test_owner_of_another_course_is_not_a_manager(client, db, student):
    owner = make_user(db, role=UserRole.teacher)
    quiz = make_quiz(db, lesson=make_lesson(db, teacher=owner))
    _start(client, quiz.id, student)

    outsider = make_user(db, role=UserRole.teacher)
    r = client.get(f"/quizzes/{quiz.id}/attempts", headers=headers_for(outsider))
    assert r.status_code == 200
    assert r.json()["total"] == 0


def test_multi_choice_superset_and_disjoint_score_zero(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, (a, b, c, d) = add_question(
        db,
        quiz=quiz,
        type=QuestionType.MCQ_MULTI,
        points=3,
        options=[("A", True), ("B", False), ("C", True), ("D", False)],
    )

    for picked, labels in (([a, c, d], ["A", "C", "D"]), ([b], ["B"])):
        attempt = _start(client, quiz.id, student)
        r = _submit(
            client,
            attempt["attempt_id"],
            student,
            [{"question_id": str(q.id), "option_ids": [str(o.id) for o in picked]}],
        )
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["score"] == 0
        assert body["answers"][0]["points_earned"] == 0
        assert body["answers"][0]["is_correct"] is False
        assert body["answers"][0]["your_answer"] == labels

        rows = db.scalars(
            select(QuizAttemptAnswer).where(QuizAttemptAnswer.attempt_id == uuid.UUID(attempt["attempt_id"]))
        ).all()
        assert len(rows) == len(picked)
        assert all(row.is_correct is False for row in rows)


def test_attempt_number_collision_is_a_conflict(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    # One existing attempt already holds the number the next start would take.
    db.add(QuizAttempt(quiz_id=quiz.id, student_id=student.id, attempt_no=2, status=QuizAttemptStatus.IN_PROGRESS))
    db.commit()

    r = client.post(f"/quizzes/{quiz.id}/start", headers=headers_for(student))
    assert r.status_code == 409
    assert r.json()["error_code"] == "attempt_number_conflict"

    count = db.scalar(
        select(func.count(QuizAttempt.id)).where(QuizAttempt.quiz_id == quiz.id, QuizAttempt.student_id == student.id)
    )
    assert count == 1


def test_lost_status_update_discards_answer_rows(client, db, lesson, student, monkeypatch):
    quiz = make_quiz(db, lesson=lesson)
    q, opts = add_question(db, quiz=quiz, type=QuestionType.MCQ_SINGLE, points=1, options=[("A", True), ("B", False)])
    attempt = _start(client, quiz.id, student)
    attempt_id = uuid.UUID(attempt["attempt_id"])

    # A concurrent submission wins the IN_PROGRESS -> SUBMITTED update.
    monkeypatch.setattr(SqlAttemptStore, "transition_to_submitted", lambda self, attempt_id, *, score, completed_at: False)

    r = _submit(client, attempt["attempt_id"], student, [{"question_id": str(q.id), "option_id": str(opts[0].id)}])
    assert r.status_code == 400
    assert r.json()["error_code"] == "attempt_already_submitted"

    rows = db.scalars(select(QuizAttemptAnswer).where(QuizAttemptAnswer.attempt_id == attempt_id)).all()
    assert rows == []
    row = db.scalar(select(QuizAttempt).where(QuizAttempt.id == attempt_id))
    assert row.status == QuizAttemptStatus.IN_PROGRESS
    assert row.score is None


def test_result_timestamps_carry_utc_offset(client, db, lesson, student):
    quiz = make_quiz(db, lesson=lesson)
    q, _ = add_question(db, quiz=quiz, type=QuestionType.TEXT, points=1)
    attempt = _start(client, quiz.id, student)
    body = _submit(client, attempt["attempt_id"], student, [{"question_id": str(q.id), "answer_text": "ok"}]).json()

    assert body["started_at"].endswith(("Z", "+00:00"))
    assert body["completed_at"].endswith(("Z", "+00:00"))
