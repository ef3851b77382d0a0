"""initial purchase/payment schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "beats",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("producer", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("audio_url", sa.String(500), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("is_exclusive", sa.Boolean(), nullable=False),
        sa.Column("is_hidden", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_beats_exclusive", "beats", ["is_exclusive"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("beat_id", sa.String(36), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("beat_title", sa.String(255), nullable=False),
        sa.Column("beat_producer", sa.String(255), nullable=False),
        sa.Column("beat_audio_url", sa.String(500), nullable=True),
        sa.Column("beat_image_url", sa.String(500), nullable=True),
        sa.Column("is_exclusive", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_outcome", sa.String(20), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(36), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_purchase_user_beat", "purchases", ["user_id", "beat_id"])
    op.create_index("idx_purchase_beat", "purchases", ["beat_id"])
    op.create_index("idx_purchase_status", "purchases", ["status"])
    op.create_index(
        "uq_purchase_exclusive_winner",
        "purchases",
        ["beat_id"],
        unique=True,
        sqlite_where=sa.text("is_exclusive = 1 AND status = 'completed'"),
        postgresql_where=sa.text("is_exclusive AND status = 'completed'"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("purchase_id", sa.String(36), sa.ForeignKey("purchases.id"), nullable=False),
        sa.Column("customer_id", sa.String(36), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payment_method", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("bank_reference", sa.String(255), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.String(36), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )
    op.create_index("idx_payment_purchase", "payments", ["purchase_id"])
    op.create_index("idx_payment_status", "payments", ["status"])
    op.create_index("idx_payment_transaction", "payments", ["transaction_id"])

    op.create_table(
        "exclusive_purchase_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("purchase_id", sa.String(36), sa.ForeignKey("purchases.id"), nullable=False, unique=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("beat_id", sa.String(36), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(30), nullable=True),
        sa.Column("payment_id", sa.String(36), sa.ForeignKey("payments.id"), nullable=True),
        sa.Column("approved_by", sa.String(36), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(36), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_exclusive_beat", "exclusive_purchase_requests", ["beat_id"])
    op.create_index("idx_exclusive_status", "exclusive_purchase_requests", ["status"])

    op.create_table(
        "verification_codes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("code", sa.String(6), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_verification_user_type", "verification_codes", ["user_id", "type", "used"])
    op.create_index("idx_verification_expires", "verification_codes", ["expires_at"])

    op.create_table(
        "payment_callbacks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("transaction_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("payment_record_id", sa.String(36), nullable=True),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("transaction_id", "status", name="uq_callback_transaction_status"),
    )
    op.create_index("idx_callback_outcome", "payment_callbacks", ["outcome"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column("subject_type", sa.String(30), nullable=True),
        sa.Column("subject_id", sa.String(36), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("prev_hash", sa.String(64), nullable=True),
        sa.Column("entry_hash", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_audit_event", "audit_log", ["event_type"])
    op.create_index("idx_audit_actor", "audit_log", ["actor_id"])
    op.create_index("idx_audit_subject", "audit_log", ["subject_type", "subject_id"])
    op.create_index("idx_audit_created", "audit_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("payment_callbacks")
    op.drop_table("verification_codes")
    op.drop_table("exclusive_purchase_requests")
    op.drop_table("payments")
    op.drop_table("purchases")
    op.drop_table("beats")
    op.drop_table("users")
