from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy.orm import Session

from coursehub.db.session import get_db
from coursehub.services.answer_recorder import AnswerRecorder, SqlAnswerStore
from coursehub.services.attempt_ledger import AttemptLedger, SqlAttemptStore
from coursehub.services.quiz_definitions import SqlQuizDefinitionReader
from coursehub.services.quiz_results import ResultPresenter
from coursehub.services.quiz_scoring import ScoringEngine


@dataclass(frozen=True)
class QuizAttemptServices:
    ledger: AttemptLedger
    recorder: AnswerRecorder
    engine: ScoringEngine
    presenter: ResultPresenter


def build_quiz_attempt_services(db: Session) -> QuizAttemptServices:
    """Wire the SQL stores into the attempt services for one request session."""
    definitions = SqlQuizDefinitionReader(db)
    attempts = SqlAttemptStore(db)
    answers = SqlAnswerStore(db)

    engine = ScoringEngine(definitions=definitions, attempts=attempts, answers=answers)
    ledger = AttemptLedger(definitions=definitions, attempts=attempts, uow=db)
    recorder = AnswerRecorder(ledger=ledger, definitions=definitions, answers=answers, engine=engine, uow=db)
    presenter = ResultPresenter(definitions=definitions, attempts=attempts, engine=engine)
    return QuizAttemptServices(ledger=ledger, recorder=recorder, engine=engine, presenter=presenter)


def get_quiz_attempt_services(db: Session = Depends(get_db)) -> QuizAttemptServices:
    return build_quiz_attempt_services(db)
