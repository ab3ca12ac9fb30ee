"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name):
    return sa.Column(name, sa.DateTime(), nullable=False, server_default=sa.text("now()"))


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("imap_host", sa.String(255), nullable=False),
        sa.Column("imap_port", sa.Integer(), nullable=False, server_default="993"),
        sa.Column("imap_user", sa.String(255), nullable=False),
        sa.Column("imap_password", sa.String(255), nullable=False),
        sa.Column("ssl_mode", sa.String(20), nullable=False, server_default="ssl"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default="true"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "folders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("synchronize", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_uid", sa.Integer(), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "folder_id",
            sa.Integer(),
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("uid", sa.Integer(), nullable=False),
        sa.Column("message_id", sa.String(998), nullable=True),
        sa.Column("from_addresses", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("subject", sa.String(1000), nullable=True),
        sa.Column("seen", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("folder_id", "uid", name="uq_messages_folder_uid"),
    )

    op.create_table(
        "rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "folder_id",
            sa.Integer(),
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("stop", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("condition", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_rules_folder_id", "rules", ["folder_id"])
    op.create_index("ix_rules_order", "rules", ["order"])

    op.create_table(
        "operations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(20), nullable=False),
        sa.Column("args", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "failure_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("folder_name", sa.String(255), nullable=True),
        sa.Column("operation_name", sa.String(20), nullable=True),
        sa.Column("message_uid", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "worker_state",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("is_running", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("poll_interval", sa.Integer(), nullable=False, server_default="60"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "worker_triggers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _timestamp("requested_at"),
    )

    # Insert default worker state row
    op.execute(
        "INSERT INTO worker_state (id, is_running, poll_interval) VALUES (1, true, 60)"
    )


def downgrade():
    op.drop_table("worker_triggers")
    op.drop_table("worker_state")
    op.drop_table("failure_logs")
    op.drop_table("operations")
    op.drop_index("ix_rules_order", table_name="rules")
    op.drop_index("ix_rules_folder_id", table_name="rules")
    op.drop_table("rules")
    op.drop_table("messages")
    op.drop_table("folders")
    op.drop_table("accounts")
