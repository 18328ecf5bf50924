"""Initial scheduling schema"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


DAY_OF_WEEK = sa.Enum(
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
    name="day_of_week",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    ]


def upgrade() -> None:
    op.create_table(
        "teacher",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255)),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "student",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255)),
        sa.Column("grade_year", sa.Integer()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "booth",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "subject_type",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "subject",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "subject_subject_type",
        sa.Column(
            "subject_id",
            sa.Integer(),
            sa.ForeignKey("subject.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "subject_type_id",
            sa.Integer(),
            sa.ForeignKey("subject_type.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "class_type",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "regular_class_template",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("day_of_week", DAY_OF_WEEK, nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teacher.id"), nullable=False),
        sa.Column("subject_id", sa.Integer(), sa.ForeignKey("subject.id"), nullable=False),
        sa.Column("subject_type_id", sa.Integer(), sa.ForeignKey("subject_type.id")),
        sa.Column("booth_id", sa.Integer(), sa.ForeignKey("booth.id"), nullable=False),
        sa.Column("class_type_id", sa.Integer(), sa.ForeignKey("class_type.id"), nullable=False),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("notes", sa.String(length=255)),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="chk_template_time_order"),
    )
    op.create_index(
        "ix_regular_class_template_day_of_week",
        "regular_class_template",
        ["day_of_week"],
    )

    op.create_table(
        "template_student_assignment",
        sa.Column(
            "template_id",
            sa.Integer(),
            sa.ForeignKey("regular_class_template.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "student_id",
            sa.Integer(),
            sa.ForeignKey("student.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "class_session",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teacher.id"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("student.id"), nullable=False),
        sa.Column("subject_id", sa.Integer(), sa.ForeignKey("subject.id"), nullable=False),
        sa.Column("subject_type_id", sa.Integer(), sa.ForeignKey("subject_type.id")),
        sa.Column("booth_id", sa.Integer(), sa.ForeignKey("booth.id"), nullable=False),
        sa.Column("class_type_id", sa.Integer(), sa.ForeignKey("class_type.id"), nullable=False),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("regular_class_template.id")),
        sa.Column("notes", sa.String(length=255)),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="chk_class_session_time_order"),
        sa.UniqueConstraint(
            "template_id", "date", "student_id", name="uq_template_date_student"
        ),
    )
    op.create_index("ix_class_session_teacher_date", "class_session", ["teacher_id", "date"])
    op.create_index("ix_class_session_booth_date", "class_session", ["booth_id", "date"])
    op.create_index("ix_class_session_student_date", "class_session", ["student_id", "date"])

    op.create_table(
        "student_class_enrollment",
        sa.Column(
            "class_id",
            sa.Integer(),
            sa.ForeignKey("class_session.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("student.id"), primary_key=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="enrolled"),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("student_class_enrollment")
    op.drop_index("ix_class_session_student_date", table_name="class_session")
    op.drop_index("ix_class_session_booth_date", table_name="class_session")
    op.drop_index("ix_class_session_teacher_date", table_name="class_session")
    op.drop_table("class_session")
    op.drop_table("template_student_assignment")
    op.drop_index("ix_regular_class_template_day_of_week", table_name="regular_class_template")
    op.drop_table("regular_class_template")
    op.drop_table("class_type")
    op.drop_table("subject_subject_type")
    op.drop_table("subject")
    op.drop_table("subject_type")
    op.drop_table("booth")
    op.drop_table("student")
    op.drop_table("teacher")
    DAY_OF_WEEK.drop(op.get_bind(), checkfirst=True)
