"""Runtime switches admins can flip without a deploy."""

from sqlalchemy import Column, String, Uuid, JSON, TIMESTAMP

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class SystemSetting(Base):
    """
    Key/value settings row.
    Keys: 'maintenance' {enabled, message, scheduled_start, scheduled_end},
          'limits'      {max_active_orders_per_user, max_restaurants_per_owner},
          'features'    {notifications, analytics, payments, delivery}.
    """

    __tablename__ = "system_settings"

    key = Column(String(64), primary_key=True)
    value = Column(JSON, nullable=False, default=dict)
    updated_by = Column(Uuid, nullable=True)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
