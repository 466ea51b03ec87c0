"""
Models package — export all SQLAlchemy models.
"""

from src.models.base import Base
from src.models.group import Group, GroupMember, GroupMemberHistory
from src.models.user import User
from src.models.watch import Watch, WatchGroup

__all__ = [
    "Base",
    "Group",
    "GroupMember",
    "GroupMemberHistory",
    "User",
    "Watch",
    "WatchGroup",
]
