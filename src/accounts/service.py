"""
SceneStack — Account Service (collaborator-facing entry points)

Thin façade used by controllers and jobs. Accepts raw directive payloads
as they arrive from the UI and routes each call to the lifecycle, the
eligibility helper or the deferred executor.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.accounts.credentials import PasswordVerifier
from src.accounts.directives import parse_directives
from src.accounts.eligibility import OwnedGroupEligibility, TransferEligibilityService
from src.accounts.executor import DeferredDispositionExecutor, DispositionReport
from src.accounts.lifecycle import AccountLifecycle, LoginStatus
from src.models.user import User


class AccountService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        password_verifier: PasswordVerifier | None = None,
    ) -> None:
        self.lifecycle = AccountLifecycle(session_factory, password_verifier)
        self.eligibility = TransferEligibilityService(session_factory)
        self.executor = DeferredDispositionExecutor(session_factory)

    async def deactivate_account(self, user_id: uuid.UUID) -> User:
        return await self.lifecycle.deactivate_account(user_id)

    async def request_deletion(
        self,
        user_id: uuid.UUID,
        password: str,
        group_actions: Iterable[dict[str, Any]],
    ) -> User:
        directives = parse_directives(group_actions)
        return await self.lifecycle.request_deletion(user_id, password, directives)

    async def reactivate_account(self, user_id: uuid.UUID) -> User:
        return await self.lifecycle.reactivate_account(user_id)

    async def get_owned_groups_with_eligibility(
        self,
        user_id: uuid.UUID,
    ) -> list[OwnedGroupEligibility]:
        return await self.eligibility.get_owned_groups_with_eligibility(user_id)

    async def run_deferred_dispositions(self, user_id: uuid.UUID) -> DispositionReport:
        return await self.executor.run(user_id)

    async def check_login(self, user_id: uuid.UUID) -> LoginStatus:
        return await self.lifecycle.check_login(user_id)
