from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.domain.models import (
    DataScope,
    Dept,
    LoginUser,
    Menu,
    MenuType,
    Role,
    RoleMenu,
    RoleSnapshot,
    Status,
    User,
    UserProfile,
)
from app.domain.permissions import (
    ALL_PERMISSION,
    has_any_permission,
    has_any_role,
    split_permissions,
)
from app.services.data_scope_service import DataScopeService, ScopeCondition, build_data_scope
from app.services.permission_service import PermissionService


def _role(role_id: int, data_scope: DataScope, status: str = Status.NORMAL) -> RoleSnapshot:
    return RoleSnapshot(
        role_id=role_id,
        role_key=f"role{role_id}",
        role_name=f"Role {role_id}",
        data_scope=data_scope,
        status=status,
    )


def _dept_ids(engine: Engine, conditions: list[RoleSnapshot], user_id: int = 2, dept_id: int = 101) -> set[int]:
    scope = build_data_scope(user_id, dept_id, conditions)
    statement = scope.apply(select(Dept.dept_id), Dept.dept_id)
    with Session(engine) as session:
        return set(session.exec(statement).all())


def test_split_permissions_trims_and_drops_blanks() -> None:
    assert split_permissions("system:user:list, system:user:query,,") == [
        "system:user:list",
        "system:user:query",
    ]
    assert split_permissions(None) == []
    assert split_permissions("") == []


def test_any_permission_and_wildcard() -> None:
    assert has_any_permission(["system:user:list"], ["system:role:list", "system:user:list"])
    assert not has_any_permission(["system:user:list"], ["system:role:list"])
    assert has_any_permission([ALL_PERMISSION], ["anything:at:all"])


def test_any_role_and_super_admin() -> None:
    assert has_any_role(["common"], ["auditor", "common"])
    assert not has_any_role(["common"], ["auditor"])
    assert has_any_role(["admin"], ["auditor"])


def test_admin_resolves_to_wildcard(seeded_engine: Engine) -> None:
    service = PermissionService()
    with Session(seeded_engine) as session:
        assert service.resolve_permissions(session, 1) == {ALL_PERMISSION}
        assert service.resolve_role_keys(session, 1) == {"admin"}


def test_permissions_split_comma_separated_menu_entries(seeded_engine: Engine) -> None:
    service = PermissionService()
    with Session(seeded_engine) as session:
        session.add(
            Menu(
                menu_id=2000,
                parent_id=100,
                menu_name="User Import",
                menu_type=MenuType.BUTTON,
                perms="system:user:import, system:user:template",
            )
        )
        session.add(RoleMenu(role_id=2, menu_id=2000))
        session.commit()
        permissions = service.resolve_permissions(session, 2)
    assert {"system:user:import", "system:user:template", "system:role:list"} <= permissions
    assert ALL_PERMISSION not in permissions


def test_permissions_skip_disabled_menus(seeded_engine: Engine) -> None:
    service = PermissionService()
    with Session(seeded_engine) as session:
        menu = session.get(Menu, 1011)
        assert menu is not None
        menu.status = Status.DISABLED
        session.add(menu)
        session.commit()
        permissions = service.resolve_permissions(session, 2)
    assert "system:role:export" not in permissions
    assert "system:role:list" in permissions


def test_dept_descendants_include_subtree_only(seeded_engine: Engine) -> None:
    service = PermissionService()
    with Session(seeded_engine) as session:
        assert service.find_dept_descendant_ids(session, 101) == [101, 103, 104, 105, 106, 107]
        assert service.find_dept_descendant_ids(session, 102) == [102, 108, 109]


def test_all_scope_dominates_other_roles() -> None:
    scope = build_data_scope(2, 105, [_role(3, DataScope.SELF), _role(4, DataScope.ALL)])
    assert scope.is_unrestricted()


def test_disabled_roles_do_not_contribute_scope() -> None:
    scope = build_data_scope(
        2,
        105,
        [_role(3, DataScope.ALL, status=Status.DISABLED), _role(4, DataScope.DEPT)],
    )
    assert scope.conditions == (ScopeCondition(DataScope.DEPT, 105),)


def test_duplicate_scopes_are_deduplicated() -> None:
    scope = build_data_scope(2, 105, [_role(3, DataScope.DEPT), _role(4, DataScope.DEPT)])
    assert scope.conditions == (ScopeCondition(DataScope.DEPT, 105),)


def test_dept_and_child_scope_excludes_siblings(seeded_engine: Engine) -> None:
    visible = _dept_ids(seeded_engine, [_role(3, DataScope.DEPT_AND_CHILD)])
    assert visible == {101, 103, 104, 105, 106, 107}
    assert 102 not in visible


def test_custom_scope_uses_role_departments(seeded_engine: Engine) -> None:
    assert _dept_ids(seeded_engine, [_role(2, DataScope.CUSTOM)]) == {100, 101, 105}


def test_combined_scopes_are_ored(seeded_engine: Engine) -> None:
    visible = _dept_ids(seeded_engine, [_role(2, DataScope.CUSTOM), _role(3, DataScope.DEPT)], dept_id=108)
    assert visible == {100, 101, 105, 108}


def test_self_scope_matches_own_user_only(seeded_engine: Engine) -> None:
    scope = build_data_scope(2, 105, [_role(3, DataScope.SELF)])
    with Session(seeded_engine) as session:
        users = session.exec(scope.apply(select(User.user_id), User.dept_id, User.user_id)).all()
        depts = session.exec(scope.apply(select(Dept.dept_id), Dept.dept_id)).all()
    assert list(users) == [2]
    assert list(depts) == []


def test_admin_scope_is_unrestricted() -> None:
    admin = LoginUser(
        user_id=1,
        user_name="admin",
        user=UserProfile(user_id=1, user_name="admin", roles=[_role(2, DataScope.SELF)]),
    )
    assert DataScopeService().resolve(admin).is_unrestricted()


def test_role_keys_are_taken_whole(seeded_engine: Engine) -> None:
    service = PermissionService()
    with Session(seeded_engine) as session:
        role = session.get(Role, 2)
        assert role is not None
        role.role_key = "ops,admin"
        session.add(role)
        session.commit()
        assert service.resolve_role_keys(session, 2) == {"ops,admin"}
