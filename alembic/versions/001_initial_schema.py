"""Initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-06 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create organizations, requesters, source map, tickets and sync runs."""

    op.create_table(
        'ticket_orgs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table(
        'ticket_requesters',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('fd_requester_id', sa.BigInteger(), nullable=True),
        sa.Column('ticket_org_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['ticket_org_id'], ['ticket_orgs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('fd_requester_id')
    )
    op.create_index('ix_ticket_requesters_ticket_org_id', 'ticket_requesters', ['ticket_org_id'], unique=False)

    op.create_table(
        'fd_source_map',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=True),
        sa.Column('company_id', sa.BigInteger(), nullable=True),
        sa.Column('ticket_org_id', sa.Integer(), nullable=False),
        sa.CheckConstraint('domain IS NOT NULL OR company_id IS NOT NULL', name='ck_fd_source_map_key'),
        sa.ForeignKeyConstraint(['ticket_org_id'], ['ticket_orgs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('domain'),
        sa.UniqueConstraint('company_id')
    )
    op.create_index('ix_fd_source_map_ticket_org_id', 'fd_source_map', ['ticket_org_id'], unique=False)

    op.create_table(
        'freshdesk_tickets',
        sa.Column('id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('subject', sa.String(length=500), nullable=True),
        sa.Column('status', sa.Integer(), nullable=False),
        sa.Column('priority', sa.Integer(), server_default='1', nullable=True),
        sa.Column('type', sa.String(length=100), nullable=True),
        sa.Column('source', sa.String(length=50), nullable=True),
        sa.Column('requester_email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('captured_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('ticket_org_id', sa.Integer(), nullable=True),
        sa.Column('ticket_requester_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['ticket_org_id'], ['ticket_orgs.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['ticket_requester_id'], ['ticket_requesters.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_freshdesk_tickets_status', 'freshdesk_tickets', ['status'], unique=False)
    op.create_index('ix_freshdesk_tickets_requester_email', 'freshdesk_tickets', ['requester_email'], unique=False)
    op.create_index('ix_freshdesk_tickets_created_at', 'freshdesk_tickets', ['created_at'], unique=False)
    op.create_index('ix_freshdesk_tickets_updated_at', 'freshdesk_tickets', ['updated_at'], unique=False)
    op.create_index('ix_freshdesk_tickets_ticket_org_id', 'freshdesk_tickets', ['ticket_org_id'], unique=False)
    op.create_index('ix_freshdesk_tickets_ticket_requester_id', 'freshdesk_tickets', ['ticket_requester_id'], unique=False)

    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('since', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='running', nullable=True),
        sa.Column('imported', sa.Integer(), server_default='0', nullable=True),
        sa.Column('failed', sa.Integer(), server_default='0', nullable=True),
        sa.Column('failed_ids', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sync_runs_status', 'sync_runs', ['status'], unique=False)
    op.create_index('ix_sync_runs_started_at', 'sync_runs', ['started_at'], unique=False)


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('sync_runs')
    op.drop_table('freshdesk_tickets')
    op.drop_table('fd_source_map')
    op.drop_table('ticket_requesters')
    op.drop_table('ticket_orgs')
