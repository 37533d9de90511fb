"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _sync_columns(sync_type: str) -> list[sa.Column]:
  return [
    sa.Column(f"last_{sync_type}_sync_scheduled_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column(f"last_{sync_type}_sync_started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column(f"last_{sync_type}_sync_completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column(f"last_{sync_type}_sync_failed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column(f"first_{sync_type}_sync_failed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column(f"last_{sync_type}_sync_failure_message", sa.Text(), nullable=True),
    sa.Column(f"{sync_type}_sync_failures", sa.Integer(), nullable=False, server_default="0"),
  ]


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("api_token_hash", sa.String(), nullable=True),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)
  op.create_index("ix_users_api_token_hash", "users", ["api_token_hash"], unique=True)

  op.create_table(
    "integration_connections",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("provider_kind", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("failure_message", sa.Text(), nullable=True),
    sa.Column("provider_user_id", sa.String(), nullable=True),
    sa.Column("access_token_encrypted", sa.Text(), nullable=True),
    sa.Column("token_hint", sa.String(), nullable=False, server_default=""),
    sa.Column("config", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    sa.Column("context", postgresql.JSONB(), nullable=True),
    *_sync_columns("notifications"),
    *_sync_columns("tasks"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("user_id", "provider_kind", name="ux_integration_connections_user_provider"),
  )
  op.create_index("ix_integration_connections_user_id", "integration_connections", ["user_id"], unique=False)
  op.create_index(
    "ix_integration_connections_provider_user_id", "integration_connections", ["provider_user_id"], unique=False
  )

  op.create_table(
    "third_party_items",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("source_id", sa.String(), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("data", postgresql.JSONB(), nullable=False),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column(
      "integration_connection_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("integration_connections.id", ondelete="CASCADE"),
      nullable=False,
    ),
    sa.Column(
      "source_item_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("third_party_items.id", ondelete="SET NULL"),
      nullable=True,
    ),
    sa.Column("derivation_pending", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint(
      "user_id", "source_id", "integration_connection_id", name="ux_third_party_items_user_source_connection"
    ),
  )
  op.create_index("ix_third_party_items_source_id", "third_party_items", ["source_id"], unique=False)
  op.create_index("ix_third_party_items_kind", "third_party_items", ["kind"], unique=False)
  op.create_index("ix_third_party_items_user_id", "third_party_items", ["user_id"], unique=False)
  op.create_index(
    "ix_third_party_items_integration_connection_id", "third_party_items", ["integration_connection_id"], unique=False
  )

  op.create_table(
    "tasks",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("body", sa.Text(), nullable=False, server_default=""),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("priority", sa.Integer(), nullable=False, server_default="4"),
    sa.Column("due_at", sa.String(), nullable=True),
    sa.Column("tags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
    sa.Column("parent_id", sa.String(), nullable=True),
    sa.Column("project", sa.String(), nullable=False, server_default="Inbox"),
    sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column(
      "source_item_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("third_party_items.id", ondelete="CASCADE"),
      nullable=False,
    ),
    sa.Column(
      "sink_item_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("third_party_items.id", ondelete="SET NULL"),
      nullable=True,
    ),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_user_id", "tasks", ["user_id"], unique=False)
  op.create_index("ux_tasks_source_item_id", "tasks", ["source_item_id"], unique=True)
  op.create_index("ix_tasks_sink_item_id", "tasks", ["sink_item_id"], unique=False)

  op.create_table(
    "notifications",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("last_read_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("snoozed_until", sa.DateTime(timezone=True), nullable=True),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("task_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
    sa.Column(
      "source_item_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("third_party_items.id", ondelete="CASCADE"),
      nullable=False,
    ),
  )
  op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
  op.create_index("ix_notifications_status", "notifications", ["status"], unique=False)
  op.create_index("ux_notifications_source_item_id", "notifications", ["source_item_id"], unique=True)


def downgrade() -> None:
  op.drop_table("notifications")
  op.drop_table("tasks")
  op.drop_table("third_party_items")
  op.drop_table("integration_connections")
  op.drop_table("users")
