"""create plan reminder tables

Revision ID: 20261019_01
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plan_reminder_schedules",
        sa.Column("plan_id", sa.String(), primary_key=True),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("task_trigger_ids", sa.JSON(), nullable=False),
        sa.Column("grace_trigger_id", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "app_state",
        sa.Column("key", sa.String(), primary_key=True),
        sa.Column("value", sa.String(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "daily_triggers",
        sa.Column("trigger_id", sa.String(length=36), primary_key=True),
        sa.Column("recipient", sa.String(), nullable=False),
        sa.Column("hour", sa.Integer(), nullable=False),
        sa.Column("minute", sa.Integer(), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("body", sa.String(), nullable=False),
        sa.Column("last_fired_on", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "sms_opt_outs",
        sa.Column("phone_number", sa.String(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("sms_opt_outs")
    op.drop_table("daily_triggers")
    op.drop_table("app_state")
    op.drop_table("plan_reminder_schedules")
