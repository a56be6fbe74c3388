"""
channel_tasks and email_notification_preferences

Revision ID: 20261019_000003
Revises: 20261019_000002
Create Date: 2026-10-19 00:40:00
"""
from __future__ import annotations
from alembic import op

# revision identifiers, used by Alembic.
revision = '20261019_000003'
down_revision = '20261019_000002'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.channel_tasks (
            id uuid PRIMARY KEY,
            thread_id uuid NOT NULL REFERENCES chatflow.threads(id) ON DELETE CASCADE,
            title text NOT NULL,
            description text,
            start_date timestamptz NULL,
            end_date timestamptz NULL,
            due_date timestamptz NULL,
            assigned_to uuid NULL REFERENCES chatflow.users(id) ON DELETE SET NULL,
            status text NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending','in_progress','completed','cancelled')),
            priority text NOT NULL DEFAULT 'medium'
                CHECK (priority IN ('low','medium','high','urgent')),
            tags jsonb NOT NULL DEFAULT '[]'::jsonb,
            estimated_hours numeric(6,2) NULL,
            actual_hours numeric(6,2) NULL,
            is_all_day boolean NOT NULL DEFAULT false,
            start_time time NULL,
            end_time time NULL,
            parent_task_id uuid NULL REFERENCES chatflow.channel_tasks(id) ON DELETE CASCADE,
            dependencies jsonb NOT NULL DEFAULT '[]'::jsonb,
            completed_at timestamptz NULL,
            created_by uuid NULL REFERENCES chatflow.users(id) ON DELETE SET NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_channel_tasks_thread_created ON chatflow.channel_tasks(thread_id, created_at DESC)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_channel_tasks_parent ON chatflow.channel_tasks(parent_task_id)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.email_notification_preferences (
            user_id uuid PRIMARY KEY REFERENCES chatflow.users(id) ON DELETE CASCADE,
            preferences jsonb NOT NULL DEFAULT '{}'::jsonb,
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS chatflow.email_notification_preferences")
    op.execute("DROP TABLE IF EXISTS chatflow.channel_tasks")
