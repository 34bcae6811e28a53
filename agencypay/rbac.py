"""RBAC module/action registry and per-role defaults.

Roles arrive as a claim on the identity service's token; this module only
decides what each role may do here.
"""
from __future__ import annotations

from typing import Literal

PermissionAction = Literal["view", "add", "edit", "delete"]

ACTION_BY_METHOD: dict[str, PermissionAction] = {
    "GET": "view",
    "HEAD": "view",
    "OPTIONS": "view",
    "POST": "add",
    "PUT": "edit",
    "PATCH": "edit",
    "DELETE": "delete",
}

SYSTEM_MODULES: list[dict[str, str]] = [
    {"key": "payment_plans", "name": "Payment Plans"},
    {"key": "installments", "name": "Installments"},
    {"key": "reports", "name": "Reports"},
    {"key": "dashboard", "name": "Dashboard"},
]


def _full_permissions() -> dict[str, bool]:
    return {"view": True, "add": True, "edit": True, "delete": True}


def _view_only() -> dict[str, bool]:
    return {"view": True, "add": False, "edit": False, "delete": False}


def _module_defaults(fill: dict[str, bool]) -> dict[str, dict[str, bool]]:
    return {module["key"]: dict(fill) for module in SYSTEM_MODULES}


DEFAULT_ROLE_PERMISSIONS: dict[str, dict[str, dict[str, bool]]] = {
    "agency_admin": _module_defaults(_full_permissions()),
    "agency_user": {
        **_module_defaults({"view": False, "add": False, "edit": False, "delete": False}),
        "payment_plans": {"view": True, "add": True, "edit": True, "delete": False},
        "installments": {"view": True, "add": True, "edit": True, "delete": False},
        "reports": _view_only(),
        "dashboard": _view_only(),
    },
}


def has_permission(role: str | None, module: str, action: str) -> bool:
    if not role:
        return False
    permissions = DEFAULT_ROLE_PERMISSIONS.get(role)
    if not permissions:
        return False
    return bool(permissions.get(module, {}).get(action, False))
