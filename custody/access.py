"""
access.py - Role-based access control for administrative operations

Only asset registration and deregistration are gated. Deposits and
withdrawals are open to every user.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Set

from .core import DEFAULT_ADMIN_ROLE, ASSET_ADMIN_ROLE, Unauthorized


class AccessControl:
    """
    Maps roles to the accounts holding them.

    The constructing admin holds DEFAULT_ADMIN_ROLE (may grant and revoke any
    role) and ASSET_ADMIN_ROLE (may list and delist assets).
    """

    def __init__(self, admin: str):
        if not admin or not admin.strip():
            raise ValueError("admin cannot be empty")
        self._members: Dict[str, Set[str]] = defaultdict(set)
        self._members[DEFAULT_ADMIN_ROLE].add(admin)
        self._members[ASSET_ADMIN_ROLE].add(admin)

    def has_role(self, role: str, account: str) -> bool:
        return account in self._members.get(role, ())

    def require_role(self, role: str, account: str) -> None:
        """Raise Unauthorized unless account holds role."""
        if not self.has_role(role, account):
            raise Unauthorized(f"{account} lacks role {role}")

    def grant_role(self, caller: str, role: str, account: str) -> None:
        self.require_role(DEFAULT_ADMIN_ROLE, caller)
        self._members[role].add(account)

    def revoke_role(self, caller: str, role: str, account: str) -> None:
        self.require_role(DEFAULT_ADMIN_ROLE, caller)
        self._members[role].discard(account)

    def members(self, role: str) -> Set[str]:
        """Return a copy of the accounts holding role."""
        return set(self._members.get(role, ()))
