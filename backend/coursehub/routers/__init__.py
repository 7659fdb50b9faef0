from coursehub.routers import auth, health, questions, quizzes

__all__ = [
    "auth",
    "health",
    "questions",
    "quizzes",
]
