# Overview: Capability checks consulted by the HTTP boundary; the ledgers never call this.

"""
Permission Checking

WHY: Mutating endpoints are gated by a capability (e.g. CONFIRM_SALE).
Authentication and role storage live outside this service; the checker
only answers "may this actor do this?".

DESIGN PRINCIPLES:
- Fail closed: an unknown actor or a missing grant is a denial
- Pluggable: any object with has_capability(actor_id, capability) can be
  installed as app.extensions["permission_checker"]
"""

from __future__ import annotations

from flask import current_app

# Capabilities checked by the routes
CAPABILITIES = (
    "MANAGE_STOCK",
    "CREATE_SALE",
    "CONFIRM_SALE",
    "CANCEL_SALE",
    "MANAGE_CASH_BOX",
    "ISSUE_INVOICE",
    "MANAGE_FISCAL_DOCUMENTS",
    "ANNUL_SALE",
    "VIEW_REPORTS",
)

WILDCARD = "*"


class PermissionDeniedError(Exception):
    """Raised when an actor lacks a required capability."""

    def __init__(self, actor_id: int | None, capability: str):
        super().__init__(f"Actor {actor_id} lacks capability {capability}")
        self.actor_id = actor_id
        self.capability = capability


class ConfigPermissionChecker:
    """
    Grants read from a mapping of actor id -> capability names.

    Keys may be ints or strings (JSON config only has string keys).
    """

    def __init__(self, grants: dict | None = None):
        self.grants = {str(actor): set(caps) for actor, caps in (grants or {}).items()}

    def has_capability(self, actor_id: int | None, capability: str) -> bool:
        if actor_id is None:
            return False
        granted = self.grants.get(str(actor_id), set())
        return WILDCARD in granted or capability in granted


def get_permission_checker():
    return current_app.extensions["permission_checker"]


def user_has_capability(actor_id: int | None, capability: str) -> bool:
    return bool(get_permission_checker().has_capability(actor_id, capability))


def require_capability(actor_id: int | None, capability: str) -> None:
    if not user_has_capability(actor_id, capability):
        current_app.logger.warning("Capability %s denied for actor %s", capability, actor_id)
        raise PermissionDeniedError(actor_id, capability)
