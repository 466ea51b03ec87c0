from src.privacy.membership import GroupMembershipOracle
from src.privacy.policy import VisibilityPolicy, WatchVisibility, evaluate_visibility
from src.privacy.settings import PrivacySettings, PrivacySettingsService

__all__ = [
    "GroupMembershipOracle",
    "PrivacySettings",
    "PrivacySettingsService",
    "VisibilityPolicy",
    "WatchVisibility",
    "evaluate_visibility",
]
