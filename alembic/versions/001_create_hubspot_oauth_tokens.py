"""Create hubspot_oauth_tokens table for HubSpot OAuth token storage.

Revision ID: 001
Revises:
"""

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Skip if table was already created by init_db()
    conn = op.get_bind()
    if sa.inspect(conn).has_table("hubspot_oauth_tokens"):
        return
    op.create_table(
        "hubspot_oauth_tokens",
        sa.Column("portal_id", sa.String(32), primary_key=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.Integer(), nullable=False),
        sa.Column("hub_domain", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table("hubspot_oauth_tokens")
