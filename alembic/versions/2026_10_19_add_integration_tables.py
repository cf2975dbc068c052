"""Add integration, webhook delivery and LMS tables

Revision ID: 5f2c1e9a7b3d
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from alembic import op

# revision identifiers, used by Alembic.
revision = "5f2c1e9a7b3d"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "integrationtype": ("LMS", "WEBHOOK", "SSO", "AI"),
    "integrationstatus": ("PENDING", "ACTIVE", "ERROR", "INACTIVE"),
    "eventstatus": ("INFO", "SUCCESS", "WARNING", "ERROR"),
    "synctype": ("ROSTER", "COURSES", "ASSIGNMENTS", "GRADES"),
    "syncdirection": ("INBOUND", "OUTBOUND", "BIDIRECTIONAL"),
    "syncstatus": ("PENDING", "COMPLETED", "FAILED"),
    "deliverystatus": ("PENDING", "DELIVERED", "FAILED"),
}


def enum_type(name: str) -> sa.Enum:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def integration_fk() -> sa.Column:
    return sa.Column(
        "integration_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("integrations.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "integrations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", enum_type("integrationtype"), nullable=False),
        sa.Column("provider", sa.String(100), nullable=False),
        sa.Column("status", enum_type("integrationstatus"), nullable=False),
        sa.Column("credentials", sa.Text(), nullable=False),
        sa.Column("config", postgresql.JSONB(), nullable=False),
        sa.Column("events", postgresql.JSONB(), nullable=False),
        sa.Column("delivery_url", sa.String(1024), nullable=True),
        sa.Column("features", postgresql.JSONB(), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_integrations_team_id", "integrations", ["team_id"])
    op.create_index("ix_integrations_type", "integrations", ["type"])
    op.create_index("ix_integrations_status", "integrations", ["status"])

    op.create_table(
        "integration_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        integration_fk(),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("status", enum_type("eventstatus"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_integration_events_integration_id", "integration_events", ["integration_id"])
    op.create_index("ix_integration_events_type", "integration_events", ["type"])
    op.create_index("ix_integration_events_timestamp", "integration_events", ["timestamp"])

    op.create_table(
        "sync_operations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        integration_fk(),
        sa.Column("type", enum_type("synctype"), nullable=False),
        sa.Column("direction", enum_type("syncdirection"), nullable=False),
        sa.Column("status", enum_type("syncstatus"), nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_succeeded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", postgresql.JSONB(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sync_operations_integration_id", "sync_operations", ["integration_id"])
    op.create_index("ix_sync_operations_status", "sync_operations", ["status"])
    op.create_index("ix_sync_operations_started_at", "sync_operations", ["started_at"])

    op.create_table(
        "webhook_deliveries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        integration_fk(),
        sa.Column("event", sa.String(100), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("url", sa.String(1024), nullable=False),
        sa.Column("status", enum_type("deliverystatus"), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_webhook_deliveries_integration_id", "webhook_deliveries", ["integration_id"])
    op.create_index("ix_webhook_deliveries_event", "webhook_deliveries", ["event"])
    op.create_index("ix_webhook_deliveries_status", "webhook_deliveries", ["status"])
    op.create_index("ix_webhook_deliveries_created_at", "webhook_deliveries", ["created_at"])

    op.create_table(
        "webhook_retries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "delivery_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("webhook_deliveries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attempt", sa.Integer(), nullable=False),
        sa.Column("retry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_webhook_retries_delivery_id", "webhook_retries", ["delivery_id"])
    op.create_index("ix_webhook_retries_retry_at", "webhook_retries", ["retry_at"])
    op.create_index("ix_webhook_retries_processed_at", "webhook_retries", ["processed_at"])

    op.create_table(
        "lms_courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        integration_fk(),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("code", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("integration_id", "external_id", name="uq_lms_course_external"),
    )
    op.create_table(
        "lms_users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        integration_fk(),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("name", sa.String(512), nullable=True),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("integration_id", "external_id", name="uq_lms_user_external"),
    )
    op.create_table(
        "lms_enrollments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        integration_fk(),
        sa.Column("course_external_id", sa.String(255), nullable=False),
        sa.Column("user_external_id", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "integration_id", "course_external_id", "user_external_id", name="uq_lms_enrollment"
        ),
    )
    op.create_table(
        "lms_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        integration_fk(),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("course_external_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_score", sa.Float(), nullable=False),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("metadata", postgresql.JSONB(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("integration_id", "external_id", name="uq_lms_assignment_external"),
    )
    for table in ("lms_courses", "lms_users", "lms_enrollments", "lms_assignments"):
        op.create_index(f"ix_{table}_integration_id", table, ["integration_id"])


def downgrade() -> None:
    for table in (
        "lms_assignments",
        "lms_enrollments",
        "lms_users",
        "lms_courses",
        "webhook_retries",
        "webhook_deliveries",
        "sync_operations",
        "integration_events",
        "integrations",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in ENUMS:
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
