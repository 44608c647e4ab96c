"""initial relationship schema

Revision ID: 3f1c9a7d2e4b
Revises:
Create Date: 2026-10-19 09:12:44.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2e4b'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


USER_ROLE = sa.Enum(
    'APP_ADMIN', 'FARM_ADMIN', 'FIELD_MANAGER', 'FARMER', 'LORRY_AGENCY',
    'FIELD_EQUIPMENT_MANAGER', 'INPUT_SUPPLIER', 'DEALER', name='userrole')
USER_STATUS = sa.Enum('ACTIVE', 'SUSPENDED', 'PENDING_APPROVAL', name='userstatus')
RELATIONSHIP_TYPE = sa.Enum(
    'FIELD_MANAGER', 'FARMER_SUPPLIER', 'LORRY_AGENCY', 'EQUIPMENT_PROVIDER',
    'INPUT_SUPPLIER', 'DEALER', name='relationshiptype')
RELATIONSHIP_STATUS = sa.Enum('PENDING', 'ACTIVE', 'TERMINATED', name='relationshipstatus')
INVITATION_STATUS = sa.Enum('PENDING', 'ACCEPTED', 'EXPIRED', 'CANCELLED', name='invitationstatus')
SUPPLY_CHAIN_DATA_TYPE = sa.Enum(
    'FIELD_OPERATIONS', 'EQUIPMENT_USAGE', 'INPUT_SUPPLY', 'COMMODITY_DELIVERY',
    'TRANSPORTATION', 'SALES_TRANSACTION', name='supplychaindatatype')
AUDIT_ACTION = sa.Enum('CREATE', 'UPDATE', name='auditaction')
NOTIFICATION_KIND = sa.Enum(
    'RELATIONSHIP_REQUESTED', 'RELATIONSHIP_APPROVED', 'RELATIONSHIP_REJECTED',
    'RELATIONSHIP_TERMINATED', 'FIELD_MANAGER_INVITATION', 'DATA_SHARED',
    'DATA_UPDATED', name='notificationkind')
NOTIFICATION_STATUS = sa.Enum('PENDING', 'SENT', 'FAILED', name='notificationstatus')


def upgrade():
    op.create_table(
        'user',
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('full_name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('role', USER_ROLE, nullable=False),
        sa.Column('status', USER_STATUS, nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('phone_number', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('profile_data', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)
    op.create_index(op.f('ix_user_role'), 'user', ['role'], unique=False)

    op.create_table(
        'businessrelationship',
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('farm_admin_id', sa.Uuid(), nullable=False),
        sa.Column('service_provider_id', sa.Uuid(), nullable=False),
        sa.Column('type', RELATIONSHIP_TYPE, nullable=False),
        sa.Column('status', RELATIONSHIP_STATUS, nullable=False),
        sa.Column('established_date', sa.DateTime(), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=True),
        sa.Column('request_message', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('termination_reason', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('terminated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['farm_admin_id'], ['user.id']),
        sa.ForeignKeyConstraint(['service_provider_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_businessrelationship_farm_admin_id'),
                    'businessrelationship', ['farm_admin_id'], unique=False)
    op.create_index(op.f('ix_businessrelationship_service_provider_id'),
                    'businessrelationship', ['service_provider_id'], unique=False)
    op.create_index(
        'uq_businessrelationship_open_triple', 'businessrelationship',
        ['farm_admin_id', 'service_provider_id', 'type'], unique=True,
        sqlite_where=sa.text("status != 'TERMINATED'"),
        postgresql_where=sa.text("status != 'TERMINATED'"))

    op.create_table(
        'invitation',
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('inviter_id', sa.Uuid(), nullable=False),
        sa.Column('invitee_email', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('invitee_role', USER_ROLE, nullable=False),
        sa.Column('relationship_type', RELATIONSHIP_TYPE, nullable=False),
        sa.Column('status', INVITATION_STATUS, nullable=False),
        sa.Column('magic_link_token', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_user_id', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['inviter_id'], ['user.id']),
        sa.ForeignKeyConstraint(['accepted_user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invitation_inviter_id'), 'invitation', ['inviter_id'], unique=False)
    op.create_index(op.f('ix_invitation_invitee_email'), 'invitation', ['invitee_email'], unique=False)
    op.create_index(op.f('ix_invitation_magic_link_token'),
                    'invitation', ['magic_link_token'], unique=True)
    op.create_index(
        'uq_invitation_pending_email', 'invitation', ['invitee_email'], unique=True,
        sqlite_where=sa.text("status = 'PENDING'"),
        postgresql_where=sa.text("status = 'PENDING'"))

    op.create_table(
        'supplychaindata',
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('farm_admin_id', sa.Uuid(), nullable=False),
        sa.Column('type', SUPPLY_CHAIN_DATA_TYPE, nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('visibility', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['farm_admin_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_supplychaindata_farm_admin_id'),
                    'supplychaindata', ['farm_admin_id'], unique=False)
    op.create_index(op.f('ix_supplychaindata_type'), 'supplychaindata', ['type'], unique=False)

    op.create_table(
        'systemauditlog',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('actor_user_id', sa.Uuid(), nullable=True),
        sa.Column('entity_type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('action', AUDIT_ACTION, nullable=False),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_systemauditlog_actor_user_id'),
                    'systemauditlog', ['actor_user_id'], unique=False)
    op.create_index(op.f('ix_systemauditlog_entity_type'),
                    'systemauditlog', ['entity_type'], unique=False)
    op.create_index(op.f('ix_systemauditlog_entity_id'),
                    'systemauditlog', ['entity_id'], unique=False)

    op.create_table(
        'notification',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('recipient_user_id', sa.Uuid(), nullable=True),
        sa.Column('recipient_email', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('kind', NOTIFICATION_KIND, nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', NOTIFICATION_STATUS, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notification_recipient_user_id'),
                    'notification', ['recipient_user_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_notification_recipient_user_id'), table_name='notification')
    op.drop_table('notification')

    op.drop_index(op.f('ix_systemauditlog_entity_id'), table_name='systemauditlog')
    op.drop_index(op.f('ix_systemauditlog_entity_type'), table_name='systemauditlog')
    op.drop_index(op.f('ix_systemauditlog_actor_user_id'), table_name='systemauditlog')
    op.drop_table('systemauditlog')

    op.drop_index(op.f('ix_supplychaindata_type'), table_name='supplychaindata')
    op.drop_index(op.f('ix_supplychaindata_farm_admin_id'), table_name='supplychaindata')
    op.drop_table('supplychaindata')

    op.drop_index('uq_invitation_pending_email', table_name='invitation')
    op.drop_index(op.f('ix_invitation_magic_link_token'), table_name='invitation')
    op.drop_index(op.f('ix_invitation_invitee_email'), table_name='invitation')
    op.drop_index(op.f('ix_invitation_inviter_id'), table_name='invitation')
    op.drop_table('invitation')

    op.drop_index('uq_businessrelationship_open_triple', table_name='businessrelationship')
    op.drop_index(op.f('ix_businessrelationship_service_provider_id'), table_name='businessrelationship')
    op.drop_index(op.f('ix_businessrelationship_farm_admin_id'), table_name='businessrelationship')
    op.drop_table('businessrelationship')

    op.drop_index(op.f('ix_user_role'), table_name='user')
    op.drop_index(op.f('ix_user_email'), table_name='user')
    op.drop_table('user')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for enum in (NOTIFICATION_STATUS, NOTIFICATION_KIND, AUDIT_ACTION,
                     SUPPLY_CHAIN_DATA_TYPE, INVITATION_STATUS, RELATIONSHIP_STATUS,
                     RELATIONSHIP_TYPE, USER_STATUS, USER_ROLE):
            enum.drop(bind, checkfirst=True)
