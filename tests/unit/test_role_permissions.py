import pytest

from mbee.utils.role_permissions import (
    REMOVE_ALL,
    ROLE_ADMIN,
    ROLE_READ,
    ROLE_WRITE,
    RoleEnum,
    get_allowed_roles,
    role_at_least,
    role_to_permission_list,
    validate_role,
)


def test_unknown_role_rejected():
    with pytest.raises(ValueError):
        validate_role("viewer")
    with pytest.raises(ValueError):
        validate_role(REMOVE_ALL)
    validate_role(ROLE_WRITE)


def test_allowed_roles_excludes_remove_all():
    assert get_allowed_roles() == {"read", "write", "admin"}
    assert REMOVE_ALL not in get_allowed_roles()


def test_permission_list_is_cumulative():
    assert role_to_permission_list(ROLE_READ) == ["read"]
    assert role_to_permission_list(ROLE_WRITE) == ["read", "write"]
    assert role_to_permission_list(ROLE_ADMIN) == ["read", "write", "admin"]
    assert role_to_permission_list(None) == []
    assert role_to_permission_list("owner") == []


def test_role_at_least():
    assert role_at_least(ROLE_ADMIN, ROLE_WRITE)
    assert role_at_least(ROLE_WRITE, ROLE_WRITE)
    assert not role_at_least(ROLE_READ, ROLE_WRITE)
    assert not role_at_least(None, ROLE_READ)


def test_role_enum_values():
    assert RoleEnum("admin") is RoleEnum.admin
    assert [r.value for r in RoleEnum] == ["read", "write", "admin"]
