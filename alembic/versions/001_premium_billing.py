"""premium billing schema

Revision ID: 001_premium_billing
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "001_premium_billing"
down_revision = None
branch_labels = None
depends_on = None

SUBSCRIPTION_STATUSES = (
    "incomplete",
    "incomplete_expired",
    "trialing",
    "active",
    "past_due",
    "canceled",
    "unpaid",
    "paused",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Customer mappings (current and legacy)
    for table in ("billing_customers", "stripe_customers"):
        op.create_table(
            table,
            sa.Column("user_id", sa.UUID(), nullable=False),
            sa.Column("external_customer_id", sa.String(length=255), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("user_id"),
        )
        op.create_index(
            f"ix_{table}_external_customer_id", table, ["external_customer_id"]
        )

    # Subscriptions
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("external_subscription_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("external_customer_id", sa.String(length=255), nullable=True),
        sa.Column("price_id", sa.String(length=255), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*SUBSCRIPTION_STATUSES, name="subscriptionstatus"),
            nullable=False,
        ),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source_event_created", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "external_subscription_id", name="uq_subscriptions_external_id"
        ),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_index(
        "ix_subscriptions_external_customer_id",
        "subscriptions",
        ["external_customer_id"],
    )

    # Profiles (entitlement tuple)
    op.create_table(
        "profiles",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("is_premium", sa.Boolean(), nullable=False),
        sa.Column("plan", sa.String(length=40), nullable=False),
        sa.Column("premium_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("premium_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("entitlement_event_created", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    # Webhook audit log
    op.create_table(
        "webhook_events",
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("livemode", sa.Boolean(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "received", "processed", "ignored", "failed", name="webhookeventstatus"
            ),
            nullable=False,
        ),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("ix_webhook_events_event_type", "webhook_events", ["event_type"])


def downgrade() -> None:
    op.drop_index("ix_webhook_events_event_type", table_name="webhook_events")
    op.drop_table("webhook_events")
    sa.Enum(name="webhookeventstatus").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")

    op.drop_index("ix_subscriptions_external_customer_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_user_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    sa.Enum(name="subscriptionstatus").drop(op.get_bind(), checkfirst=True)

    for table in ("stripe_customers", "billing_customers"):
        op.drop_index(f"ix_{table}_external_customer_id", table_name=table)
        op.drop_table(table)
