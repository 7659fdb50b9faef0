from coursehub.models.user import User, UserRole
from coursehub.models.course import Course, Lesson
from coursehub.models.quiz import Question, QuestionOption, QuestionType, Quiz
from coursehub.models.attempt import QuizAttempt, QuizAttemptAnswer, QuizAttemptStatus
from coursehub.models.security_audit import SecurityAuditEvent

__all__ = [
    "User",
    "UserRole",
    "Course",
    "Lesson",
    "Quiz",
    "Question",
    "QuestionOption",
    "QuestionType",
    "QuizAttempt",
    "QuizAttemptAnswer",
    "QuizAttemptStatus",
    "SecurityAuditEvent",
]
