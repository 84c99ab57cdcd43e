from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from jose import jwt

from taskflow.auth import (
    ROLE_PERMISSIONS,
    PermissionChecker,
    check_permission,
    create_access_token,
    decode_token,
)
from taskflow.config import settings

PERMISSION_KEYS = {
    "canManageWorkflows",
    "canModifyAnyWorkflow",
    "canViewAllWorkflows",
    "canCreateTasks",
    "canModifyTasks",
    "canDeleteAnyTask",
    "canViewAllTasks",
}


@pytest.mark.parametrize(
    ("role", "granted"),
    [
        ("admin", PERMISSION_KEYS),
        ("manager", {"canManageWorkflows", "canCreateTasks", "canModifyTasks", "canViewAllTasks"}),
        ("member", set()),
    ],
)
def test_role_permissions_matrix_is_stable(role: str, granted: set[str]) -> None:
    user = SimpleNamespace(role=role)
    assert {key for key in PERMISSION_KEYS if check_permission(user, key)} == granted


def test_every_role_declares_the_full_keyset() -> None:
    for permissions in ROLE_PERMISSIONS.values():
        assert set(permissions) == PERMISSION_KEYS


def test_unknown_role_or_permission_is_denied() -> None:
    assert check_permission(SimpleNamespace(role="auditor"), "canCreateTasks") is False
    assert check_permission(SimpleNamespace(role="admin"), "canLaunchRockets") is False


def test_access_token_round_trip() -> None:
    user_id = str(uuid4())

    payload = decode_token(create_access_token({"sub": user_id}))

    assert payload["sub"] == user_id
    assert payload["type"] == "access"
    assert payload["exp"] > payload["iat"]


def test_expired_token_is_rejected_after_leeway() -> None:
    token = create_access_token({"sub": str(uuid4())}, expires_delta=timedelta(minutes=-5))

    with pytest.raises(HTTPException) as exc_info:
        decode_token(token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Token expired"


def test_token_signed_with_other_key_is_rejected() -> None:
    token = jwt.encode({"sub": str(uuid4()), "exp": 9999999999}, "not-the-secret", algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exc_info:
        decode_token(token)
    assert exc_info.value.status_code == 401


def test_permission_checker_passes_through_allowed_user() -> None:
    user = SimpleNamespace(id=uuid4(), role="manager")
    assert PermissionChecker("canCreateTasks")(current_user=user) is user


def test_permission_checker_rejects_missing_permission() -> None:
    checker = PermissionChecker("canManageWorkflows")

    with pytest.raises(HTTPException) as exc_info:
        checker(current_user=SimpleNamespace(id=uuid4(), role="member"))
    assert exc_info.value.status_code == 403
