"""create courses, lessons, quizzes, questions and options

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column(
            "teacher_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_courses_title", "courses", ["title"], unique=False)
    op.create_index("ix_courses_teacher_id", "courses", ["teacher_id"], unique=False)

    op.create_table(
        "lessons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_lessons_course_id", "lessons", ["course_id"], unique=False)

    op.create_table(
        "quizzes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "lesson_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lessons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("time_limit_minutes", sa.Integer(), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_quizzes_lesson_id", "quizzes", ["lesson_id"], unique=False)
    op.create_index("ix_quizzes_is_published", "quizzes", ["is_published"], unique=False)

    op.create_table(
        "questions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "quiz_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("quizzes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "type",
            sa.Enum("MCQ_SINGLE", "MCQ_MULTI", "TRUE_FALSE", "TEXT", name="questiontype"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("points", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_questions_quiz_id", "questions", ["quiz_id"], unique=False)
    op.create_index("ix_questions_type", "questions", ["type"], unique=False)

    op.create_table(
        "question_options",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "question_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_question_options_question_id", "question_options", ["question_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_question_options_question_id", table_name="question_options")
    op.drop_table("question_options")

    op.drop_index("ix_questions_type", table_name="questions")
    op.drop_index("ix_questions_quiz_id", table_name="questions")
    op.drop_table("questions")
    op.execute("DROP TYPE IF EXISTS questiontype")

    op.drop_index("ix_quizzes_is_published", table_name="quizzes")
    op.drop_index("ix_quizzes_lesson_id", table_name="quizzes")
    op.drop_table("quizzes")

    op.drop_index("ix_lessons_course_id", table_name="lessons")
    op.drop_table("lessons")

    op.drop_index("ix_courses_teacher_id", table_name="courses")
    op.drop_index("ix_courses_title", table_name="courses")
    op.drop_table("courses")
