"""Alembic migration that creates the jobs table used by deferral.

Copy into your migrations folder when the queue shares a database with an
application that manages its schema with Alembic, instead of calling
``Deferral.create_all()``.
"""
from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table('jobs',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('queue', sa.String(), nullable=False),
    sa.Column('job_type', sa.String(length=30), nullable=True),
    sa.Column('display_name', sa.String(), nullable=True),
    sa.Column('payload', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('max_age', sa.BigInteger(), nullable=True),
    sa.Column('max_retry_count', sa.Integer(), nullable=True),
    sa.Column('min_retry_delay', sa.Integer(), nullable=True),
    sa.Column('max_retry_delay', sa.Integer(), nullable=True),
    sa.Column('backoff_base', sa.Integer(), nullable=True),
    sa.Column('enqueued_at', sa.BigInteger(), nullable=False),
    sa.Column('scheduled_at', sa.BigInteger(), nullable=False),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('error', sa.Text(), nullable=True),
    sa.Column('error_trace', sa.Text(), nullable=True),
    sa.Column('claimed_by', sa.String(), nullable=True),
    sa.Column('claimed_at', sa.BigInteger(), nullable=True),
    sa.Column('finished_at', sa.BigInteger(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_jobs_claimed_by'), 'jobs', ['claimed_by'], unique=False)
    op.create_index(op.f('ix_jobs_queue'), 'jobs', ['queue'], unique=False)
    op.create_index(op.f('ix_jobs_scheduled_at'), 'jobs', ['scheduled_at'], unique=False)
    op.create_index(op.f('ix_jobs_status'), 'jobs', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_jobs_status'), table_name='jobs')
    op.drop_index(op.f('ix_jobs_scheduled_at'), table_name='jobs')
    op.drop_index(op.f('ix_jobs_queue'), table_name='jobs')
    op.drop_index(op.f('ix_jobs_claimed_by'), table_name='jobs')
    op.drop_table('jobs')
