"""Initial scheduling schema

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role_enum = sa.Enum('customer', 'technician', 'admin', name='user_role_enum')
appointment_status_enum = sa.Enum('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED', name='appointment_status_enum')
absence_status_enum = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='absence_status_enum')


def upgrade() -> None:
    """Create users, catalog, appointment and absence tables."""
    op.create_table(
        'users',
        sa.Column('uid', sa.String(length=26), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('role', user_role_enum, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('uid'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('phone'),
    )
    op.create_index(op.f('ix_users_uid'), 'users', ['uid'], unique=True)

    op.create_table(
        'services',
        sa.Column('uid', sa.String(length=26), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, comment='in minutes'),
        sa.Column('price', sa.Integer(), nullable=False, comment='最终价格，单位：分'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('duration_minutes > 0', name='ck_service_duration_positive'),
        sa.PrimaryKeyConstraint('uid'),
        sa.UniqueConstraint('name'),
    )
    op.create_index(op.f('ix_services_uid'), 'services', ['uid'], unique=False)

    op.create_table(
        'resources',
        sa.Column('uid', sa.String(length=26), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False, comment='例如: 1号房间, 2号按摩床'),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('uid'),
    )
    op.create_index(op.f('ix_resources_uid'), 'resources', ['uid'], unique=False)
    op.create_index(op.f('ix_resources_type'), 'resources', ['type'], unique=False)

    op.create_table(
        'technician_service_link',
        sa.Column('user_id', sa.String(length=26), nullable=False),
        sa.Column('service_id', sa.String(length=26), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.uid'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.uid'], ),
        sa.PrimaryKeyConstraint('user_id', 'service_id')
    )

    op.create_table(
        'service_resource_requirements',
        sa.Column('uid', sa.String(length=26), nullable=False),
        sa.Column('service_id', sa.String(length=26), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_requirement_quantity_positive'),
        sa.ForeignKeyConstraint(['service_id'], ['services.uid'], ),
        sa.PrimaryKeyConstraint('uid'),
        sa.UniqueConstraint('service_id', 'resource_type', name='uq_requirement_service_type'),
    )
    op.create_index(op.f('ix_service_resource_requirements_uid'), 'service_resource_requirements', ['uid'], unique=False)
    op.create_index(
        op.f('ix_service_resource_requirements_service_id'), 'service_resource_requirements', ['service_id'], unique=False
    )

    op.create_table(
        'appointments',
        sa.Column('uid', sa.String(length=26), nullable=False),
        sa.Column('customer_id', sa.String(length=26), nullable=False),
        sa.Column('technician_id', sa.String(length=26), nullable=True),
        sa.Column('service_id', sa.String(length=26), nullable=False),
        sa.Column('status', appointment_status_enum, nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('final_price', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['users.uid'], ),
        sa.ForeignKeyConstraint(['technician_id'], ['users.uid'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.uid'], ),
        sa.PrimaryKeyConstraint('uid'),
    )
    op.create_index(op.f('ix_appointments_uid'), 'appointments', ['uid'], unique=False)
    op.create_index(op.f('ix_appointments_customer_id'), 'appointments', ['customer_id'], unique=False)
    op.create_index('ix_appointments_technician_window', 'appointments', ['technician_id', 'start_time'], unique=False)

    op.create_table(
        'appointment_resource_links',
        sa.Column('appointment_id', sa.String(length=26), nullable=False),
        sa.Column('resource_id', sa.String(length=26), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.uid'], ),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.uid'], ),
        sa.PrimaryKeyConstraint('appointment_id', 'resource_id')
    )
    op.create_index(
        op.f('ix_appointment_resource_links_resource_id'), 'appointment_resource_links', ['resource_id'], unique=False
    )

    op.create_table(
        'absence_requests',
        sa.Column('uid', sa.String(length=26), nullable=False),
        sa.Column('technician_id', sa.String(length=26), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False, comment='请假开始时间'),
        sa.Column('end_time', sa.DateTime(), nullable=False, comment='请假结束时间'),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('status', absence_status_enum, nullable=False),
        sa.Column('reviewed_by_user_id', sa.String(length=26), nullable=True, comment='审批的管理员'),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True, comment='审批时间'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['technician_id'], ['users.uid'], ),
        sa.ForeignKeyConstraint(['reviewed_by_user_id'], ['users.uid'], ),
        sa.PrimaryKeyConstraint('uid'),
    )
    op.create_index(op.f('ix_absence_requests_uid'), 'absence_requests', ['uid'], unique=False)
    op.create_index(
        'ix_absence_requests_technician_window', 'absence_requests', ['technician_id', 'start_time'], unique=False
    )


def downgrade() -> None:
    """Drop all scheduling tables."""
    op.drop_index('ix_absence_requests_technician_window', table_name='absence_requests')
    op.drop_index(op.f('ix_absence_requests_uid'), table_name='absence_requests')
    op.drop_table('absence_requests')
    op.drop_index(op.f('ix_appointment_resource_links_resource_id'), table_name='appointment_resource_links')
    op.drop_table('appointment_resource_links')
    op.drop_index('ix_appointments_technician_window', table_name='appointments')
    op.drop_index(op.f('ix_appointments_customer_id'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_uid'), table_name='appointments')
    op.drop_table('appointments')
    op.drop_index(op.f('ix_service_resource_requirements_service_id'), table_name='service_resource_requirements')
    op.drop_index(op.f('ix_service_resource_requirements_uid'), table_name='service_resource_requirements')
    op.drop_table('service_resource_requirements')
    op.drop_table('technician_service_link')
    op.drop_index(op.f('ix_resources_type'), table_name='resources')
    op.drop_index(op.f('ix_resources_uid'), table_name='resources')
    op.drop_table('resources')
    op.drop_index(op.f('ix_services_uid'), table_name='services')
    op.drop_table('services')
    op.drop_index(op.f('ix_users_uid'), table_name='users')
    op.drop_table('users')
    appointment_status_enum.drop(op.get_bind(), checkfirst=True)
    absence_status_enum.drop(op.get_bind(), checkfirst=True)
    user_role_enum.drop(op.get_bind(), checkfirst=True)
