"""add booking overlap exclusion constraint (postgresql)

Revision ID: 8b2d6e0a13c5
Revises: 4f1a9c2e7b30
Create Date: 2026-09-09 14:40:00.000000

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '8b2d6e0a13c5'
down_revision = '4f1a9c2e7b30'
branch_labels = None
depends_on = None


def upgrade():
    # SQLite has no exclusion constraints; the court row lock covers it there
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE bookings
        ADD CONSTRAINT ex_bookings_court_no_overlap
        EXCLUDE USING gist (
            court_id WITH =,
            tsrange(start_time, end_time, '[)') WITH &&
        )
        WHERE (status IN ('pending', 'confirmed', 'checked_in'))
        """
    )


def downgrade():
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS ex_bookings_court_no_overlap")
