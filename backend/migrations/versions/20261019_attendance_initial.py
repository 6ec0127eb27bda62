"""attendance engine initial schema

Revision ID: 20261019_attendance_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_attendance_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "supervisors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idnumber", sa.String(length=64), nullable=False),
        sa.Column("firstname", sa.String(length=128), nullable=True),
        sa.Column("lastname", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idnumber", name="uq_supervisors_idnumber"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idnumber", sa.String(length=64), nullable=False),
        sa.Column("firstname", sa.String(length=128), nullable=True),
        sa.Column("lastname", sa.String(length=128), nullable=True),
        sa.Column("supervisor_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["supervisor_id"], ["supervisors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idnumber", name="uq_students_idnumber"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_students_supervisor_id", "students", ["supervisor_id"], unique=False)

    op.create_table(
        "shift_definitions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("supervisor_id", sa.Integer(), nullable=True),
        sa.Column("slot", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("official_start", sa.String(length=8), nullable=True),
        sa.Column("official_end", sa.String(length=8), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["supervisor_id"], ["supervisors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("supervisor_id", "slot", name="uq_shift_definitions_supervisor_slot"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_shift_definitions_supervisor_id", "shift_definitions", ["supervisor_id"], unique=False)

    op.create_table(
        "schedule_overrides",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("supervisor_id", sa.Integer(), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("slot", sa.String(length=16), nullable=False),
        sa.Column("official_start", sa.String(length=8), nullable=True),
        sa.Column("official_end", sa.String(length=8), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["supervisor_id"], ["supervisors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("supervisor_id", "effective_date", "slot", name="uq_schedule_overrides_supervisor_date_slot"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_schedule_overrides_supervisor_id", "schedule_overrides", ["supervisor_id"], unique=False)
    op.create_index("ix_schedule_overrides_effective_date", "schedule_overrides", ["effective_date"], unique=False)

    op.create_table(
        "overtime_authorizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by_supervisor_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("end_at > start_at", name="ck_overtime_authorizations_window"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.ForeignKeyConstraint(["created_by_supervisor_id"], ["supervisors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "effective_date", name="uq_overtime_authorizations_student_date"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_overtime_authorizations_student_id", "overtime_authorizations", ["student_id"], unique=False)
    op.create_index("ix_overtime_authorizations_effective_date", "overtime_authorizations", ["effective_date"], unique=False)

    op.create_table(
        "attendance_punches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=8), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_authorized_overtime", sa.Boolean(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("validated_by", sa.String(length=64), nullable=True),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("evidence_url", sa.Text(), nullable=True),
        sa.Column("dedupe_bucket", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.ForeignKeyConstraint(["shift_id"], ["shift_definitions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "kind", "dedupe_bucket", name="uq_attendance_punches_dedupe"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_attendance_punches_student_id", "attendance_punches", ["student_id"], unique=False)
    op.create_index("ix_attendance_punches_shift_id", "attendance_punches", ["shift_id"], unique=False)
    op.create_index("ix_attendance_punches_status", "attendance_punches", ["status"], unique=False)
    op.create_index("ix_attendance_punches_student_date", "attendance_punches", ["student_id", "attendance_date"], unique=False)
    op.create_index(
        "ix_attendance_punches_student_kind_received",
        "attendance_punches",
        ["student_id", "kind", "received_at"],
        unique=False,
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("hours", sa.Float(), nullable=False),
        sa.Column("worked_minutes", sa.Integer(), nullable=False),
        sa.Column("official_time_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("official_time_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("in_punch_id", sa.Integer(), nullable=True),
        sa.Column("out_punch_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("frozen_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.ForeignKeyConstraint(["shift_id"], ["shift_definitions.id"]),
        sa.ForeignKeyConstraint(["in_punch_id"], ["attendance_punches.id"]),
        sa.ForeignKeyConstraint(["out_punch_id"], ["attendance_punches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "attendance_date", "shift_id", name="uq_ledger_entries_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ledger_entries_shift_id", "ledger_entries", ["shift_id"], unique=False)
    op.create_index("ix_ledger_entries_student_date", "ledger_entries", ["student_id", "attendance_date"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipient_idnumber", sa.String(length=64), nullable=False),
        sa.Column("notification_type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=128), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=True),
        sa.Column("punch_kind", sa.String(length=8), nullable=True),
        sa.Column("punch_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_notifications_student_id", "notifications", ["student_id"], unique=False)
    op.create_index("ix_notifications_recipient_read", "notifications", ["recipient_idnumber", "is_read"], unique=False)


def downgrade():
    op.drop_index("ix_notifications_recipient_read", table_name="notifications")
    op.drop_index("ix_notifications_student_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_ledger_entries_student_date", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_shift_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")

    op.drop_index("ix_attendance_punches_student_kind_received", table_name="attendance_punches")
    op.drop_index("ix_attendance_punches_student_date", table_name="attendance_punches")
    op.drop_index("ix_attendance_punches_status", table_name="attendance_punches")
    op.drop_index("ix_attendance_punches_shift_id", table_name="attendance_punches")
    op.drop_index("ix_attendance_punches_student_id", table_name="attendance_punches")
    op.drop_table("attendance_punches")

    op.drop_index("ix_overtime_authorizations_effective_date", table_name="overtime_authorizations")
    op.drop_index("ix_overtime_authorizations_student_id", table_name="overtime_authorizations")
    op.drop_table("overtime_authorizations")

    op.drop_index("ix_schedule_overrides_effective_date", table_name="schedule_overrides")
    op.drop_index("ix_schedule_overrides_supervisor_id", table_name="schedule_overrides")
    op.drop_table("schedule_overrides")

    op.drop_index("ix_shift_definitions_supervisor_id", table_name="shift_definitions")
    op.drop_table("shift_definitions")

    op.drop_index("ix_students_supervisor_id", table_name="students")
    op.drop_table("students")

    op.drop_table("supervisors")
