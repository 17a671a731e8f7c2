"""ActorSelector: building the Actor value from linkage tables."""

from uuid import uuid4

import pytest

from stock_kernel.domain.scope import Capability, HierarchyLevel, Role, resolve_scope
from stock_kernel.models.actor import DirectorGrant, Employee, RoleAssignment
from stock_kernel.selectors.actor_selector import ActorSelector


@pytest.fixture
def selector(session):
    return ActorSelector(session)


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def assign_role(session, tenant_id, user_id):
    def _assign(role: str, branch=None, tenant=None):
        row = RoleAssignment(
            user_id=user_id,
            tenant_id=tenant or tenant_id,
            role=role,
            branch_id=branch.id if branch else None,
        )
        session.add(row)
        session.flush()
        return row

    return _assign


@pytest.fixture
def create_employee(session, tenant_id, user_id):
    def _create(branch=None, name="Funcionário"):
        employee = Employee(
            tenant_id=tenant_id,
            name=name,
            user_id=user_id,
            branch_id=branch.id if branch else None,
        )
        session.add(employee)
        session.flush()
        return employee

    return _create


class TestRolesAndGrants:
    def test_unknown_user_has_nothing(self, selector, user_id, tenant_id):
        actor = selector.load_actor(user_id, tenant_id)

        assert actor.role_assignments == ()
        assert actor.home_branch is None
        assert not actor.has_director_capability
        assert resolve_scope(actor).is_deny_all

    def test_role_with_home_branch(self, selector, assign_role, user_id, tenant_id, branch_a):
        assign_role("manager", branch=branch_a)

        actor = selector.load_actor(user_id, tenant_id)

        assert actor.roles() == frozenset({Role.MANAGER})
        assert actor.home_branch.id == branch_a.id
        assert not actor.home_branch.is_main

    def test_director_grant(self, selector, assign_role, session, user_id, tenant_id, branch_a):
        assign_role("technician", branch=branch_a)
        session.add(DirectorGrant(tenant_id=tenant_id, user_id=user_id))
        session.flush()

        actor = selector.load_actor(user_id, tenant_id)

        assert actor.has_director_capability
        assert Capability.DIRECTOR in actor.capabilities()
        assert resolve_scope(actor).can_see_all_branches

    def test_grant_in_other_tenant_ignored(self, selector, session, user_id, tenant_id):
        session.add(DirectorGrant(tenant_id=uuid4(), user_id=user_id))
        session.flush()

        assert not selector.load_actor(user_id, tenant_id).has_director_capability

    def test_unknown_role_skipped_with_warning(
        self, selector, assign_role, user_id, tenant_id, branch_a, captured_logs
    ):
        assign_role("auditor", branch=branch_a)
        assign_role("admin", branch=branch_a)

        actor = selector.load_actor(user_id, tenant_id)

        assert actor.roles() == frozenset({Role.ADMIN})
        warnings = [r for r in captured_logs() if r["message"] == "unknown_role_ignored"]
        assert warnings and warnings[0]["role"] == "auditor"

    def test_assignments_of_other_tenants_do_not_grant(
        self, selector, assign_role, user_id, tenant_id
    ):
        assign_role("superadmin", tenant=uuid4())

        actor = selector.load_actor(user_id, tenant_id)

        assert Role.SUPERADMIN not in actor.roles()
        assert resolve_scope(actor).is_deny_all


class TestLinkage:
    def test_technician_by_user(self, selector, create_technician, user_id, tenant_id, branch_a):
        tech = create_technician("T", branch=branch_a, user_id=user_id)

        actor = selector.load_actor(user_id, tenant_id)

        assert actor.technician_id == tech.id
        assert actor.employee_id is None

    def test_technician_through_employee(
        self, selector, create_employee, create_technician, user_id, tenant_id, branch_a
    ):
        employee = create_employee(branch=branch_a)
        tech = create_technician("T", branch=branch_a, employee_id=employee.id)

        actor = selector.load_actor(user_id, tenant_id)

        assert actor.employee_id == employee.id
        assert actor.technician_id == tech.id

    def test_home_branch_falls_back_to_employee(
        self, selector, assign_role, create_employee, user_id, tenant_id, branch_b
    ):
        assign_role("technician")
        create_employee(branch=branch_b)

        actor = selector.load_actor(user_id, tenant_id)

        assert actor.home_branch.id == branch_b.id

    def test_led_teams_from_both_paths(
        self, selector, create_employee, create_technician, create_team, user_id, tenant_id, branch_a
    ):
        employee = create_employee(branch=branch_a)
        tech = create_technician("T", branch=branch_a, user_id=user_id)
        alpha = create_team("Alpha", leader_id=tech.id)
        beta = create_team("Beta", leader_employee_id=employee.id)
        create_team("Gamma")

        actor = selector.load_actor(user_id, tenant_id)

        assert actor.technician_led_team_ids == (alpha.id,)
        assert actor.employee_led_team_ids == (beta.id,)

    def test_team_leader_resolves_to_supervisor(
        self, selector, assign_role, create_technician, create_team, user_id, tenant_id, branch_a
    ):
        assign_role("technician", branch=branch_a)
        tech = create_technician("T", branch=branch_a, user_id=user_id)
        team = create_team("Alpha", leader_id=tech.id)

        scope = resolve_scope(selector.load_actor(user_id, tenant_id))

        assert scope.hierarchy_level == HierarchyLevel.SUPERVISOR
        assert scope.led_team_ids == (team.id,)
        assert scope.branch_id == branch_a.id


class TestScopeFor:
    def test_resolves_and_logs(self, selector, assign_role, user_id, tenant_id, branch_a, captured_logs):
        assign_role("manager", branch=branch_a)

        scope = selector.scope_for(user_id, tenant_id)

        assert scope.should_filter
        assert scope.branch_id == branch_a.id
        [record] = [r for r in captured_logs() if r["message"] == "scope_resolved"]
        assert record["scope_branch_id"] == str(branch_a.id)
        assert record["hierarchy_level"] == "manager"
        assert record["deny_all"] is False

    def test_selection_honoured_for_matriz_admin(
        self, selector, assign_role, user_id, tenant_id, matriz, branch_b
    ):
        assign_role("admin", branch=matriz)

        assert not selector.scope_for(user_id, tenant_id).should_filter
        assert selector.scope_for(user_id, tenant_id, branch_b.id).branch_id == branch_b.id
