"""Add rewards, reward_claims and user_reward_progress tables.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(table_name)


def upgrade():
    if not table_exists("rewards"):
        op.create_table(
            "rewards",
            sa.Column("id", sa.String(100), primary_key=True),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("description", sa.String(500), nullable=False),
            sa.Column("type", sa.String(20), nullable=False),
            sa.Column("value", sa.String(255), nullable=False),
            sa.Column("trigger_type", sa.String(50), nullable=False, index=True),
            sa.Column("trigger_data", sa.JSON(), nullable=False),
            sa.Column(
                "status", sa.String(20), nullable=False, server_default="active"
            ),
            sa.Column("quantity_limit", sa.Integer(), nullable=True),
            sa.Column(
                "quantity_claimed", sa.Integer(), nullable=False, server_default="0"
            ),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("image_url", sa.String(500), nullable=True),
            sa.Column("terms_and_conditions", sa.Text(), nullable=True),
            sa.Column("redemption_instructions", sa.Text(), nullable=True),
            sa.Column(
                "created_at",
                sa.DateTime(),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.CheckConstraint(
                "quantity_limit IS NULL OR quantity_claimed <= quantity_limit",
                name="ck_rewards_quantity_within_limit",
            ),
        )

    if not table_exists("reward_claims"):
        op.create_table(
            "reward_claims",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("user_id", sa.String(64), nullable=False, index=True),
            sa.Column(
                "reward_id",
                sa.String(100),
                sa.ForeignKey("rewards.id", ondelete="CASCADE"),
                nullable=False,
                index=True,
            ),
            sa.Column(
                "claimed_at",
                sa.DateTime(),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.Column("redeemed_at", sa.DateTime(), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("coupon_code", sa.String(150), nullable=True, unique=True),
            sa.Column("metadata", sa.JSON(), nullable=False),
            sa.Column("trigger_data", sa.JSON(), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        )

    if not table_exists("user_reward_progress"):
        op.create_table(
            "user_reward_progress",
            sa.Column("user_id", sa.String(64), primary_key=True),
            sa.Column("counters", sa.JSON(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )


def downgrade():
    op.drop_table("user_reward_progress")
    op.drop_table("reward_claims")
    op.drop_table("rewards")
