from src.jobs.account_cleanup import AccountCleanupJob, CleanupResult
from src.jobs.scheduler import CleanupScheduler, run_scheduler

__all__ = ["AccountCleanupJob", "CleanupResult", "CleanupScheduler", "run_scheduler"]
