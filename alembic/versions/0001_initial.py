"""create user and referral tables

Revision ID: 0001_initial
Revises:
Create Date: 2025-06-01

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(120), nullable=True),
        sa.Column('username', sa.String(60), nullable=True),
        sa.Column('profile_image', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('referral_code', sa.String(20), nullable=True),
        sa.Column('referred_by_id', sa.Integer(), nullable=True),
        sa.Column('referral_premium_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('referral_premium_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'subscription_tier',
            sa.Enum('FREE', 'GOLD', 'PLATINUM', 'DIAMOND', name='subscriptiontier'),
            nullable=False,
            server_default='FREE',
        ),
        sa.Column(
            'subscription_status',
            sa.Enum('ACTIVE', 'CANCELLED', 'EXPIRED', name='subscriptionstatus'),
            nullable=True,
        ),
        sa.Column('subscription_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_product_id', sa.String(120), nullable=True),
        sa.Column('current_plan', sa.String(120), nullable=True),
        sa.Column('next_billing_date', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['referred_by_id'], ['user.id'], name='fk_user_referred_by_id_user'),
        sa.PrimaryKeyConstraint('id', name='pk_user'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)
    op.create_index('ix_user_referral_code', 'user', ['referral_code'], unique=True)
    op.create_index('ix_user_referred_by_id', 'user', ['referred_by_id'], unique=False)

    op.create_table(
        'referral',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('referred_user_id', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'COMPLETED', 'REWARDED', name='referralstatus'),
            nullable=False,
        ),
        sa.Column('reward_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rewarded_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['referrer_id'], ['user.id'], name='fk_referral_referrer_id_user'),
        sa.ForeignKeyConstraint(['referred_user_id'], ['user.id'], name='fk_referral_referred_user_id_user'),
        sa.PrimaryKeyConstraint('id', name='pk_referral'),
        sa.UniqueConstraint('referrer_id', 'referred_user_id', name='uq_referral_referrer_referred'),
    )
    op.create_index('ix_referral_referrer_id', 'referral', ['referrer_id'], unique=False)
    op.create_index('ix_referral_referred_user_id', 'referral', ['referred_user_id'], unique=False)
    op.create_index('ix_referral_status', 'referral', ['status'], unique=False)


def downgrade():
    op.drop_index('ix_referral_status', table_name='referral')
    op.drop_index('ix_referral_referred_user_id', table_name='referral')
    op.drop_index('ix_referral_referrer_id', table_name='referral')
    op.drop_table('referral')

    op.drop_index('ix_user_referred_by_id', table_name='user')
    op.drop_index('ix_user_referral_code', table_name='user')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')

    sa.Enum(name='referralstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='subscriptionstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='subscriptiontier').drop(op.get_bind(), checkfirst=True)
