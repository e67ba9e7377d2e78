"""add otp_records, otp_issuances and audit_logs tables

Revision ID: e4f5a6b7c8d9
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "e4f5a6b7c8d9"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "otp_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("identifier", sa.String(length=255), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("secret_hash", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("otp_records", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_otp_records_identifier"), ["identifier"], unique=False)
        batch_op.create_index(batch_op.f("ix_otp_records_expires_at"), ["expires_at"], unique=False)
        batch_op.create_index("ix_otp_records_lookup", ["identifier", "purpose", "verified"], unique=False)

    op.create_table(
        "otp_issuances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("identifier", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("otp_issuances", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_otp_issuances_identifier"), ["identifier"], unique=False)
        batch_op.create_index(batch_op.f("ix_otp_issuances_created_at"), ["created_at"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("identifier", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_logs_identifier"), ["identifier"], unique=False)


def downgrade():
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_audit_logs_identifier"))
    op.drop_table("audit_logs")

    with op.batch_alter_table("otp_issuances", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_otp_issuances_created_at"))
        batch_op.drop_index(batch_op.f("ix_otp_issuances_identifier"))
    op.drop_table("otp_issuances")

    with op.batch_alter_table("otp_records", schema=None) as batch_op:
        batch_op.drop_index("ix_otp_records_lookup")
        batch_op.drop_index(batch_op.f("ix_otp_records_expires_at"))
        batch_op.drop_index(batch_op.f("ix_otp_records_identifier"))
    op.drop_table("otp_records")
