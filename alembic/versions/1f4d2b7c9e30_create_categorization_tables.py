"""create_categorization_tables

Revision ID: 1f4d2b7c9e30
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "1f4d2b7c9e30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Fuzzy merchant search; the app degrades to exact/normalized lookups without it
    op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_categories_name"), "categories", ["name"], unique=True)

    op.create_table(
        "categorization_patterns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("pattern_type", sa.String(length=20), nullable=False),
        sa.Column("pattern_value", sa.Text(), nullable=False),
        sa.Column("confidence_weight", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("success_rate", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("user_created", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "category_id",
            "pattern_type",
            "pattern_value",
            name="uq_categorization_patterns_category_type_value",
        ),
        sa.CheckConstraint(
            "pattern_type IN ('merchant', 'keyword', 'description', 'amount_range', 'regex', 'time')",
            name="ck_categorization_patterns_pattern_type",
        ),
        sa.CheckConstraint(
            "confidence_weight >= 0.1 AND confidence_weight <= 5.0",
            name="ck_categorization_patterns_confidence_weight",
        ),
        sa.CheckConstraint(
            "usage_count >= 0 AND success_count >= 0 AND success_count <= usage_count",
            name="ck_categorization_patterns_counters",
        ),
        sa.CheckConstraint(
            "success_rate >= 0.0 AND success_rate <= 1.0",
            name="ck_categorization_patterns_success_rate",
        ),
    )
    op.create_index(
        op.f("ix_categorization_patterns_category_id"), "categorization_patterns", ["category_id"], unique=False
    )
    op.create_index(
        op.f("ix_categorization_patterns_pattern_type"), "categorization_patterns", ["pattern_type"], unique=False
    )
    op.create_index(op.f("ix_categorization_patterns_active"), "categorization_patterns", ["active"], unique=False)
    op.create_index(
        op.f("ix_categorization_patterns_user_created"), "categorization_patterns", ["user_created"], unique=False
    )

    op.create_table(
        "pattern_feedbacks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("pattern_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("was_correct", sa.Boolean(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("feedback_type", sa.String(length=20), nullable=False),
        sa.Column(
            "context_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["pattern_id"], ["categorization_patterns.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_pattern_feedbacks_pattern_id"), "pattern_feedbacks", ["pattern_id"], unique=False)
    op.create_index(op.f("ix_pattern_feedbacks_category_id"), "pattern_feedbacks", ["category_id"], unique=False)
    op.create_index(op.f("ix_pattern_feedbacks_feedback_type"), "pattern_feedbacks", ["feedback_type"], unique=False)

    op.create_table(
        "canonical_merchants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("category_hint", sa.String(length=100), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_canonical_merchants_name"), "canonical_merchants", ["name"], unique=True)
    op.create_index(
        "ix_canonical_merchants_name_trgm",
        "canonical_merchants",
        ["name"],
        unique=False,
        postgresql_using="gin",
        postgresql_ops={"name": "gin_trgm_ops"},
    )

    op.create_table(
        "merchant_aliases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("canonical_merchant_id", sa.Integer(), nullable=False),
        sa.Column("raw_name", sa.String(length=255), nullable=False),
        sa.Column("normalized_name", sa.String(length=255), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("match_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["canonical_merchant_id"], ["canonical_merchants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("raw_name", "canonical_merchant_id", name="uq_merchant_aliases_raw_name_merchant"),
        sa.CheckConstraint("confidence >= 0.0 AND confidence <= 1.0", name="ck_merchant_aliases_confidence"),
        sa.CheckConstraint("match_count >= 0", name="ck_merchant_aliases_match_count"),
    )
    op.create_index(
        op.f("ix_merchant_aliases_canonical_merchant_id"), "merchant_aliases", ["canonical_merchant_id"], unique=False
    )
    op.create_index(op.f("ix_merchant_aliases_raw_name"), "merchant_aliases", ["raw_name"], unique=False)
    op.create_index(op.f("ix_merchant_aliases_normalized_name"), "merchant_aliases", ["normalized_name"], unique=False)
    op.create_index(
        "ix_merchant_aliases_normalized_name_trgm",
        "merchant_aliases",
        ["normalized_name"],
        unique=False,
        postgresql_using="gin",
        postgresql_ops={"normalized_name": "gin_trgm_ops"},
    )


def downgrade() -> None:
    op.drop_index("ix_merchant_aliases_normalized_name_trgm", table_name="merchant_aliases")
    op.drop_index(op.f("ix_merchant_aliases_normalized_name"), table_name="merchant_aliases")
    op.drop_index(op.f("ix_merchant_aliases_raw_name"), table_name="merchant_aliases")
    op.drop_index(op.f("ix_merchant_aliases_canonical_merchant_id"), table_name="merchant_aliases")
    op.drop_table("merchant_aliases")

    op.drop_index("ix_canonical_merchants_name_trgm", table_name="canonical_merchants")
    op.drop_index(op.f("ix_canonical_merchants_name"), table_name="canonical_merchants")
    op.drop_table("canonical_merchants")

    op.drop_index(op.f("ix_pattern_feedbacks_feedback_type"), table_name="pattern_feedbacks")
    op.drop_index(op.f("ix_pattern_feedbacks_category_id"), table_name="pattern_feedbacks")
    op.drop_index(op.f("ix_pattern_feedbacks_pattern_id"), table_name="pattern_feedbacks")
    op.drop_table("pattern_feedbacks")

    op.drop_index(op.f("ix_categorization_patterns_user_created"), table_name="categorization_patterns")
    op.drop_index(op.f("ix_categorization_patterns_active"), table_name="categorization_patterns")
    op.drop_index(op.f("ix_categorization_patterns_pattern_type"), table_name="categorization_patterns")
    op.drop_index(op.f("ix_categorization_patterns_category_id"), table_name="categorization_patterns")
    op.drop_table("categorization_patterns")

    op.drop_index(op.f("ix_categories_name"), table_name="categories")
    op.drop_table("categories")
