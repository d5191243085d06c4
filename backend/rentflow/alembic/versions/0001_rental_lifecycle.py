"""rental lifecycle schema

Revision ID: 0001_rental_lifecycle
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_rental_lifecycle"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), nullable=False, index=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("landlord_id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("monthly_rent", sa.Integer(), nullable=False),
        sa.Column("security_deposit", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
        sa.Column("language", sa.String(length=2), nullable=False, server_default="en"),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("special_conditions", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft", index=True),
        sa.Column("tenant_signature", sa.Text(), nullable=True),
        sa.Column("tenant_signed_at", sa.DateTime(), nullable=True),
        sa.Column("landlord_signature", sa.Text(), nullable=True),
        sa.Column("landlord_signed_at", sa.DateTime(), nullable=True),
        sa.Column("deposit_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deposit_paid_at", sa.DateTime(), nullable=True),
        sa.Column("deposit_payment_method", sa.String(length=50), nullable=True),
        sa.Column("deposit_payment_reference", sa.String(length=255), nullable=True),
        sa.Column("first_month_rent_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("first_month_rent_paid_at", sa.DateTime(), nullable=True),
        sa.Column("first_month_rent_payment_method", sa.String(length=50), nullable=True),
        sa.Column("first_month_rent_payment_reference", sa.String(length=255), nullable=True),
        sa.Column("keys_collected", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("keys_collected_at", sa.DateTime(), nullable=True),
        sa.Column("checklist_id", sa.Integer(), nullable=True),
        sa.Column("checklist_deadline", sa.Date(), nullable=True),
        sa.Column("checklist_completed_at", sa.DateTime(), nullable=True),
        sa.Column("terminated_at", sa.DateTime(), nullable=True),
        sa.Column("termination_request_id", sa.Integer(), nullable=True),
        sa.Column("contract_pdf_url", sa.String(length=500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_contracts_tenant_status", "contracts", ["tenant_id", "status"])
    op.create_index("ix_contracts_landlord_status", "contracts", ["landlord_id", "status"])

    op.create_table(
        "contract_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("platform_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("net_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("provider", sa.String(length=30), nullable=False, server_default="stripe"),
        sa.Column("provider_intent_id", sa.String(length=255), nullable=False, unique=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "key_collections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("proposed_slots_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("proposed_by_role", sa.String(length=20), nullable=False),
        sa.Column("proposed_by_user_id", sa.Integer(), nullable=False),
        sa.Column("chosen_slot_index", sa.Integer(), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(), nullable=True, index=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="proposed"),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "checklist_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("landlord_id", sa.Integer(), nullable=False, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("property_type", sa.String(length=20), nullable=False, server_default="apartment"),
        sa.Column("rooms_json", sa.Text(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "move_in_checklists",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("template_id", sa.Integer(), nullable=True),
        sa.Column("rooms_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("tenant_signature", sa.Text(), nullable=True),
        sa.Column("tenant_signed_at", sa.DateTime(), nullable=True),
        sa.Column("landlord_signature", sa.Text(), nullable=True),
        sa.Column("landlord_signed_at", sa.DateTime(), nullable=True),
        sa.Column("tenant_notes", sa.Text(), nullable=True),
        sa.Column("landlord_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "modification_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("requester_role", sa.String(length=20), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("amendment_type", sa.String(length=30), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("desired_end_date", sa.Date(), nullable=True),
        sa.Column("changes_json", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("pending_key", sa.String(length=64), nullable=True),
        sa.Column("responded_by", sa.Integer(), nullable=True),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.Column("response_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("pending_key", name="uq_modification_requests_pending_key"),
    )
    op.create_index(
        "ix_modification_requests_contract_status",
        "modification_requests",
        ["contract_id", "status"],
    )

    op.create_table(
        "workflow_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("contract_id", sa.Integer(), nullable=True, index=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=True),
        sa.Column("event_type", sa.String(length=80), nullable=False, index=True),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("workflow_events")
    op.drop_index("ix_modification_requests_contract_status", table_name="modification_requests")
    op.drop_table("modification_requests")
    op.drop_table("move_in_checklists")
    op.drop_table("checklist_templates")
    op.drop_table("key_collections")
    op.drop_table("contract_payments")
    op.drop_index("ix_contracts_landlord_status", table_name="contracts")
    op.drop_index("ix_contracts_tenant_status", table_name="contracts")
    op.drop_table("contracts")
