from farmhub.workers.unified_scheduler import UnifiedScheduler

__all__ = ["UnifiedScheduler"]
