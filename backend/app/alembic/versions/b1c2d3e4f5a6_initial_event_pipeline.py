"""initial_event_pipeline

Revision ID: b1c2d3e4f5a6
Revises:
Create Date: 2026-10-18 12:00:00.000000

Connectors, devices, locations/areas (alarm zones), event journal,
automations and zone audit log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'b1c2d3e4f5a6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'connectors',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(36), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_connectors_organization_id', 'connectors', ['organization_id'])

    op.create_table(
        'locations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(36), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('time_zone', sa.String(60), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_locations_organization_id', 'locations', ['organization_id'])

    op.create_table(
        'areas',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('location_id', sa.String(36),
                  sa.ForeignKey('locations.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('armed_state', sa.String(20), nullable=False, server_default='disarmed'),
        sa.Column('trigger_behavior', sa.String(20), nullable=False, server_default='standard'),
        *_timestamps(),
    )

    op.create_table(
        'devices',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('connector_id', sa.String(36),
                  sa.ForeignKey('connectors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('device_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('device_type', sa.String(40), nullable=True),
        sa.Column('vendor_type', sa.String(100), nullable=True),
        sa.Column('status', sa.String(60), nullable=True),
        sa.Column('battery_percentage', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('connector_id', 'device_id', name='uq_devices_connector_device'),
    )

    op.create_table(
        'area_devices',
        sa.Column('area_id', sa.String(36),
                  sa.ForeignKey('areas.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('device_id', sa.String(36),
                  sa.ForeignKey('devices.id', ondelete='CASCADE'), primary_key=True, unique=True),
    )

    op.create_table(
        'area_trigger_overrides',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('area_id', sa.String(36),
                  sa.ForeignKey('areas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(40), nullable=False),
        sa.Column('should_trigger', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('area_id', 'event_type', name='uq_area_trigger_overrides_area_type'),
    )

    op.create_table(
        'area_audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('area_id', sa.String(36),
                  sa.ForeignKey('areas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('previous_state', sa.String(20), nullable=False),
        sa.Column('new_state', sa.String(20), nullable=False),
        sa.Column('reason', sa.String(60), nullable=True),
        sa.Column('trigger_event_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_area_audit_logs_area_created', 'area_audit_logs', ['area_id', 'created_at'])

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_uuid', sa.String(64), nullable=False, unique=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('connector_id', sa.String(36),
                  sa.ForeignKey('connectors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('device_id', sa.String(100), nullable=False),
        sa.Column('standardized_event_category', sa.String(40), nullable=False),
        sa.Column('standardized_event_type', sa.String(40), nullable=False),
        sa.Column('standardized_event_subtype', sa.String(40), nullable=True),
        sa.Column('raw_event_type', sa.String(100), nullable=True),
        sa.Column('standardized_payload', sa.JSON(), nullable=True),
        sa.Column('raw_payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_events_timestamp', 'events', ['timestamp'])
    op.create_index('ix_events_connector_device', 'events', ['connector_id', 'device_id'])
    op.create_index('ix_events_category', 'events', ['standardized_event_category'])

    op.create_table(
        'automations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(36), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('config', sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_automations_organization_id', 'automations', ['organization_id'])


def downgrade() -> None:
    op.drop_index('ix_automations_organization_id', table_name='automations')
    op.drop_table('automations')
    op.drop_index('ix_events_category', table_name='events')
    op.drop_index('ix_events_connector_device', table_name='events')
    op.drop_index('ix_events_timestamp', table_name='events')
    op.drop_table('events')
    op.drop_index('ix_area_audit_logs_area_created', table_name='area_audit_logs')
    op.drop_table('area_audit_logs')
    op.drop_table('area_trigger_overrides')
    op.drop_table('area_devices')
    op.drop_table('devices')
    op.drop_table('areas')
    op.drop_index('ix_locations_organization_id', table_name='locations')
    op.drop_table('locations')
    op.drop_index('ix_connectors_organization_id', table_name='connectors')
    op.drop_table('connectors')
