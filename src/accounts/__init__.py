from src.accounts.directives import DeleteDirective, TransferDirective, parse_directives
from src.accounts.eligibility import TransferEligibilityService, is_transfer_eligible
from src.accounts.executor import DeferredDispositionExecutor, DispositionOutcome, DispositionReport
from src.accounts.lifecycle import AccountLifecycle, LoginStatus
from src.accounts.planner import GroupDispositionPlanner
from src.accounts.service import AccountService

__all__ = [
    "AccountLifecycle",
    "AccountService",
    "DeferredDispositionExecutor",
    "DeleteDirective",
    "DispositionOutcome",
    "DispositionReport",
    "GroupDispositionPlanner",
    "LoginStatus",
    "TransferDirective",
    "TransferEligibilityService",
    "is_transfer_eligible",
    "parse_directives",
]
