"""create devices, sensor_readings and alerts tables"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5d2e8b1f0a47"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "devices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("device_name", sa.String(length=120), nullable=False),
        sa.Column("device_type", sa.String(length=40), nullable=False),
        sa.Column("location", sa.String(length=120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("key_hash", sa.String(length=64), nullable=True),
    )
    op.create_index(op.f("ix_devices_device_name"), "devices", ["device_name"], unique=True)
    op.create_index(op.f("ix_devices_device_type"), "devices", ["device_type"], unique=False)

    op.create_table(
        "sensor_readings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "device_name",
            sa.String(length=120),
            sa.ForeignKey("devices.device_name", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sensor_type", sa.String(length=40), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("voltage", sa.Float(), nullable=True),
        sa.Column("current", sa.Float(), nullable=True),
        sa.Column("power", sa.Float(), nullable=True),
        sa.Column("energy", sa.Float(), nullable=True),
        sa.Column("frequency", sa.Float(), nullable=True),
        sa.Column("power_factor", sa.Float(), nullable=True),
        sa.Column("tariff", sa.Float(), nullable=True),
        sa.Column("cost", sa.Float(), nullable=True),
        sa.Column("water_level", sa.Float(), nullable=True),
        sa.Column("detected", sa.Boolean(), nullable=True),
        sa.Column("room", sa.String(length=120), nullable=True),
        sa.Column("temperature", sa.Float(), nullable=True),
        sa.Column("humidity", sa.Float(), nullable=True),
        sa.Column("smoke_level", sa.Float(), nullable=True),
        sa.Column("rainfall", sa.Float(), nullable=True),
        sa.Column("rain_intensity", sa.String(length=16), nullable=True),
        sa.Column("is_raining", sa.Boolean(), nullable=True),
    )
    op.create_index(op.f("ix_sensor_readings_device_name"), "sensor_readings", ["device_name"], unique=False)
    op.create_index(op.f("ix_sensor_readings_sensor_type"), "sensor_readings", ["sensor_type"], unique=False)
    op.create_index(op.f("ix_sensor_readings_timestamp"), "sensor_readings", ["timestamp"], unique=False)
    op.create_index(
        "ix_readings_device_ts_desc",
        "sensor_readings",
        ["device_name", sa.text("timestamp DESC")],
        unique=False,
    )

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.String(length=500), nullable=False),
        sa.Column("alert_type", sa.String(length=16), nullable=False),
        sa.Column("sensor_type", sa.String(length=40), nullable=False),
        sa.Column("device_name", sa.String(length=120), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )
    op.create_index(op.f("ix_alerts_alert_type"), "alerts", ["alert_type"], unique=False)
    op.create_index(op.f("ix_alerts_sensor_type"), "alerts", ["sensor_type"], unique=False)
    op.create_index(op.f("ix_alerts_device_name"), "alerts", ["device_name"], unique=False)
    op.create_index(op.f("ix_alerts_created_at"), "alerts", ["created_at"], unique=False)


def downgrade() -> None:
    for name in ("ix_alerts_created_at", "ix_alerts_device_name", "ix_alerts_sensor_type", "ix_alerts_alert_type"):
        op.drop_index(op.f(name), table_name="alerts")
    op.drop_table("alerts")

    op.drop_index("ix_readings_device_ts_desc", table_name="sensor_readings")
    op.drop_index(op.f("ix_sensor_readings_timestamp"), table_name="sensor_readings")
    op.drop_index(op.f("ix_sensor_readings_sensor_type"), table_name="sensor_readings")
    op.drop_index(op.f("ix_sensor_readings_device_name"), table_name="sensor_readings")
    op.drop_table("sensor_readings")

    op.drop_index(op.f("ix_devices_device_type"), table_name="devices")
    op.drop_index(op.f("ix_devices_device_name"), table_name="devices")
    op.drop_table("devices")
