"""
SQLAlchemy models.

Import all models here so they register on Base.metadata.
"""

from alerting.models.alert_rule import AlertRule
from alerting.models.alert_event import AlertEvent

__all__ = ["AlertRule", "AlertEvent"]
