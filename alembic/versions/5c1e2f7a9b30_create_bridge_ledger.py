from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1e2f7a9b30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "bridge_transactions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("deposit_tx_hash", sa.String(length=80), nullable=False),
        sa.Column("client_wallet_address", sa.String(length=64), nullable=False),
        sa.Column("stable_amount", sa.BigInteger(), nullable=False),
        sa.Column("exchange_rate", sa.BigInteger(), nullable=False),
        sa.Column("fiat_amount", sa.BigInteger(), nullable=False),
        sa.Column("exchange_order_id", sa.String(length=64), nullable=True),
        sa.Column("payout_id", sa.String(length=64), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    # one row per deposit; concurrent deliveries of the same hash collide here
    op.create_index("ix_bridge_transactions_deposit_tx_hash", "bridge_transactions", ["deposit_tx_hash"], unique=True)
    op.create_index("ix_bridge_transactions_client_wallet_address", "bridge_transactions", ["client_wallet_address"])
    op.create_index("ix_bridge_transactions_status", "bridge_transactions", ["status"])

    op.create_table(
        "bridge_status_changes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.String(length=32), sa.ForeignKey("bridge_transactions.id"), nullable=False),
        sa.Column("from_status", sa.String(length=24), nullable=True),
        sa.Column("to_status", sa.String(length=24), nullable=False),
        sa.Column("step", sa.String(length=32), nullable=False),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_bridge_status_changes_transaction_id", "bridge_status_changes", ["transaction_id"])

    op.create_table(
        "payout_destinations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("bank_code", sa.String(length=32), nullable=False),
        sa.Column("account_number", sa.String(length=64), nullable=False),
        sa.Column("account_name", sa.String(length=128), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payout_destinations_wallet_address", "payout_destinations", ["wallet_address"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_payout_destinations_wallet_address", table_name="payout_destinations")
    op.drop_table("payout_destinations")
    op.drop_index("ix_bridge_status_changes_transaction_id", table_name="bridge_status_changes")
    op.drop_table("bridge_status_changes")
    op.drop_index("ix_bridge_transactions_status", table_name="bridge_transactions")
    op.drop_index("ix_bridge_transactions_client_wallet_address", table_name="bridge_transactions")
    op.drop_index("ix_bridge_transactions_deposit_tx_hash", table_name="bridge_transactions")
    op.drop_table("bridge_transactions")
