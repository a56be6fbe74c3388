"""
initial schema: users, otp_challenges, rate_limits, app_credentials, schema_registry

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:01:00
"""
from __future__ import annotations
from alembic import op

# revision identifiers, used by Alembic.
revision = '20261019_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS chatflow")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.users (
            id uuid PRIMARY KEY,
            email text UNIQUE NOT NULL CHECK (email = lower(email)),
            display_name text,
            profile_picture_url text,
            phone_number text,
            role text NOT NULL DEFAULT 'user' CHECK (role IN ('user','admin')),
            is_active boolean NOT NULL DEFAULT true,
            verified_at timestamptz NULL,
            last_login_at timestamptz NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.otp_challenges (
            id uuid PRIMARY KEY,
            user_id uuid NOT NULL REFERENCES chatflow.users(id) ON DELETE CASCADE,
            code_hash bytea NOT NULL,
            status text NOT NULL DEFAULT 'sent'
                CHECK (status IN ('sent','approved','denied','expired','canceled')),
            attempts integer NOT NULL DEFAULT 0,
            max_attempts integer NOT NULL DEFAULT 8,
            request_ip text,
            user_agent text,
            sent_at timestamptz NOT NULL DEFAULT now(),
            expires_at timestamptz NOT NULL,
            used_at timestamptz NULL
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_otp_challenges_user_status ON chatflow.otp_challenges(user_id, status)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.rate_limits (
            id uuid PRIMARY KEY,
            subject_type text NOT NULL,
            subject text NOT NULL,
            window_start timestamptz NOT NULL,
            window_seconds integer NOT NULL,
            count integer NOT NULL DEFAULT 0,
            limit_value integer NOT NULL,
            UNIQUE (subject_type, subject, window_seconds)
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.app_credentials (
            name text PRIMARY KEY,
            encrypted_refresh_token text NOT NULL,
            scopes text[] NOT NULL DEFAULT '{}',
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.schema_registry (
            service text PRIMARY KEY,
            semver text NOT NULL,
            ts_key bigint NOT NULL,
            alembic_rev text NOT NULL,
            applied_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS chatflow.schema_registry_history (
            id bigserial PRIMARY KEY,
            service text NOT NULL,
            semver text NOT NULL,
            ts_key bigint NOT NULL,
            alembic_rev text NOT NULL,
            applied_at timestamptz NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_schema_registry_history_service_applied_at "
        "ON chatflow.schema_registry_history(service, applied_at DESC)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS chatflow.schema_registry_history")
    op.execute("DROP TABLE IF EXISTS chatflow.schema_registry")
    op.execute("DROP TABLE IF EXISTS chatflow.app_credentials")
    op.execute("DROP TABLE IF EXISTS chatflow.rate_limits")
    op.execute("DROP TABLE IF EXISTS chatflow.otp_challenges")
    op.execute("DROP TABLE IF EXISTS chatflow.users")
