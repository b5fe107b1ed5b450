from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import pytest
import pytest_asyncio

from icebot.store import VerificationStore
from icebot.verification import RoleGrantError


@pytest_asyncio.fixture
async def store(tmp_path):
    s = VerificationStore(str(tmp_path / "data" / "bot.sqlite"))
    await s.open()
    yield s
    await s.close()


class FakeSellApp:
    """Stands in for SellAppClient: returns a canned document or raises."""

    def __init__(self, document: Any = None, error: Optional[Exception] = None):
        self.document = document
        self.error = error
        self.calls: list[str] = []

    async def get_invoice(self, invoice_id: str):
        self.calls.append(invoice_id)
        if self.error is not None:
            raise self.error
        return self.document


@dataclass
class FakeRole:
    id: str
    position: int


@dataclass
class FakeGuild:
    """In-memory GuildGateway."""

    members: set = field(default_factory=lambda: {"1001"})
    roles: dict = field(default_factory=lambda: {"555": FakeRole("555", 3), "777": FakeRole("777", 2)})
    manage_roles: bool = True
    bot_rank: int = 10
    fail_add: bool = False
    granted: list = field(default_factory=list)

    async def fetch_member(self, account_id):
        return account_id if account_id in self.members else None

    def can_manage_roles(self):
        return self.manage_roles

    async def fetch_role(self, role_id):
        return self.roles.get(role_id)

    def top_rank(self):
        return self.bot_rank

    def rank_of(self, role):
        return role.position

    async def add_role(self, member, role, reason):
        if self.fail_add:
            raise RoleGrantError("Missing Access")
        self.granted.append((member, role.id, reason))


@pytest.fixture
def guild():
    return FakeGuild()
