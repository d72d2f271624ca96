"""add court reviews

Revision ID: c71e5d2a9f48
Revises: 8b2d6e0a13c5
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c71e5d2a9f48'
down_revision = '8b2d6e0a13c5'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'court_reviews',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('court_id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('rating', sa.Float(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_court_reviews_rating_range'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['court_id'], ['courts.id'], ),
        sa.ForeignKeyConstraint(['profile_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id')
    )
    with op.batch_alter_table('court_reviews', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_court_reviews_court_id'), ['court_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_court_reviews_profile_id'), ['profile_id'], unique=False)

    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.add_column(sa.Column('review_submitted_at', sa.DateTime(), nullable=True))


def downgrade():
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.drop_column('review_submitted_at')

    with op.batch_alter_table('court_reviews', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_court_reviews_profile_id'))
        batch_op.drop_index(batch_op.f('ix_court_reviews_court_id'))

    op.drop_table('court_reviews')
