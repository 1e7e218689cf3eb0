"""Sendra Core Services -- 自动化规则引擎与指标记录"""

from .actions_service import ActionsService, SkipReason
from .metrics import MetricsLogger

__all__ = [
    "ActionsService",
    "SkipReason",
    "MetricsLogger",
]
