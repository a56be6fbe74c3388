"""
workspaces, members, threads (channels and DMs), messages, invitations, notifications

Revision ID: 20261019_000002
Revises: 20261019_000001
Create Date: 2026-10-19 00:20:00
"""
from __future__ import annotations
from alembic import op

# revision identifiers, used by Alembic.
revision = '20261019_000002'
down_revision = '20261019_000001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.workspaces (
            id uuid PRIMARY KEY,
            name text NOT NULL,
            description text,
            owner_id uuid NOT NULL REFERENCES chatflow.users(id) ON DELETE CASCADE,
            settings jsonb NOT NULL DEFAULT '{}'::jsonb,
            archived_at timestamptz NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    # Archived workspaces release their name
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_workspaces_owner_name_active
        ON chatflow.workspaces(owner_id, name) WHERE archived_at IS NULL
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.workspace_members (
            workspace_id uuid NOT NULL REFERENCES chatflow.workspaces(id) ON DELETE CASCADE,
            user_id uuid NOT NULL REFERENCES chatflow.users(id) ON DELETE CASCADE,
            role text NOT NULL DEFAULT 'member' CHECK (role IN ('admin','member')),
            joined_at timestamptz NOT NULL DEFAULT now(),
            PRIMARY KEY (workspace_id, user_id)
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_workspace_members_user ON chatflow.workspace_members(user_id)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.threads (
            id uuid PRIMARY KEY,
            workspace_id uuid NOT NULL REFERENCES chatflow.workspaces(id) ON DELETE CASCADE,
            name text,
            description text,
            type text NOT NULL DEFAULT 'channel' CHECK (type IN ('channel','direct_message')),
            is_private boolean NOT NULL DEFAULT false,
            created_by uuid NULL REFERENCES chatflow.users(id) ON DELETE SET NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_threads_channel_name "
        "ON chatflow.threads(workspace_id, name) WHERE type = 'channel'"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.thread_members (
            thread_id uuid NOT NULL REFERENCES chatflow.threads(id) ON DELETE CASCADE,
            user_id uuid NOT NULL REFERENCES chatflow.users(id) ON DELETE CASCADE,
            joined_at timestamptz NOT NULL DEFAULT now(),
            last_read_at timestamptz NOT NULL DEFAULT now(),
            is_muted boolean NOT NULL DEFAULT false,
            PRIMARY KEY (thread_id, user_id)
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_thread_members_user ON chatflow.thread_members(user_id)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.messages (
            id uuid PRIMARY KEY,
            thread_id uuid NOT NULL REFERENCES chatflow.threads(id) ON DELETE CASCADE,
            sender_id uuid NULL REFERENCES chatflow.users(id) ON DELETE SET NULL,
            content text NOT NULL,
            message_type text NOT NULL DEFAULT 'text'
                CHECK (message_type IN ('text','file','system','code','rich_text')),
            is_edited boolean NOT NULL DEFAULT false,
            is_deleted boolean NOT NULL DEFAULT false,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_messages_thread_created ON chatflow.messages(thread_id, created_at DESC)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.workspace_invitations (
            id uuid PRIMARY KEY,
            workspace_id uuid NOT NULL REFERENCES chatflow.workspaces(id) ON DELETE CASCADE,
            email text NOT NULL,
            role text NOT NULL DEFAULT 'member' CHECK (role IN ('admin','member')),
            token text UNIQUE NOT NULL,
            invited_by uuid NOT NULL REFERENCES chatflow.users(id) ON DELETE CASCADE,
            expires_at timestamptz NOT NULL,
            accepted_at timestamptz NULL,
            accepted_by uuid NULL REFERENCES chatflow.users(id) ON DELETE SET NULL,
            created_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_workspace_invitations_workspace_email "
        "ON chatflow.workspace_invitations(workspace_id, lower(email))"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.notifications (
            id uuid PRIMARY KEY,
            user_id uuid NOT NULL REFERENCES chatflow.users(id) ON DELETE CASCADE,
            workspace_id uuid NULL REFERENCES chatflow.workspaces(id) ON DELETE CASCADE,
            type text NOT NULL,
            title text NOT NULL,
            message text,
            data jsonb NOT NULL DEFAULT '{}'::jsonb,
            is_read boolean NOT NULL DEFAULT false,
            read_at timestamptz NULL,
            created_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_notifications_user_created ON chatflow.notifications(user_id, created_at DESC)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS chatflow.notifications")
    op.execute("DROP TABLE IF EXISTS chatflow.workspace_invitations")
    op.execute("DROP TABLE IF EXISTS chatflow.messages")
    op.execute("DROP TABLE IF EXISTS chatflow.thread_members")
    op.execute("DROP TABLE IF EXISTS chatflow.threads")
    op.execute("DROP TABLE IF EXISTS chatflow.workspace_members")
    op.execute("DROP TABLE IF EXISTS chatflow.workspaces")
