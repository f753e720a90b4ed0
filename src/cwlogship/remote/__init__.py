from .base import RemoteLogService
from .cloudwatch import CloudWatchLogService

__all__ = ["CloudWatchLogService", "RemoteLogService"]
