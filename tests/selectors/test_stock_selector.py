"""StockSelector: scope-bounded listings, totals and ownership narrowing."""

import pytest

from stock_kernel.domain.movement import MovementContext, MovementItem, MovementType, SerialStatus
from stock_kernel.domain.scope import Role, resolve_scope
from stock_kernel.exceptions import ValidationError


@pytest.fixture
def inventory(create_product, create_unbranched_product, branch_a, branch_b):
    """Two products per branch plus one product without a branch."""
    return {
        "a_ok": create_product(stock=10, branch=branch_a, min_stock=2, name="Alicate"),
        "a_low": create_product(stock=1, branch=branch_a, min_stock=3, name="Broca"),
        "b_out": create_product(stock=0, branch=branch_b, min_stock=1, name="Cabo"),
        "b_ok": create_product(stock=7, branch=branch_b, min_stock=0, name="Disjuntor"),
        "orphan": create_unbranched_product(stock=50),
    }


class TestListings:
    def test_unrestricted_scope_sees_every_branched_product(self, stock_selector, admin_scope, inventory):
        names = [p.name for p in stock_selector.list_products(admin_scope)]
        assert names == ["Alicate", "Broca", "Cabo", "Disjuntor"]

    def test_branch_scope_sees_own_branch_only(self, stock_selector, branch_scope, branch_a, inventory):
        products = stock_selector.list_products(branch_scope(branch_a))
        assert {p.id for p in products} == {inventory["a_ok"].id, inventory["a_low"].id}

    def test_deny_all_sees_nothing(self, stock_selector, deny_all_scope, inventory):
        assert stock_selector.list_products(deny_all_scope) == []
        assert stock_selector.stock_summary(deny_all_scope).product_count == 0

    def test_unbranched_product_never_listed(self, stock_selector, admin_scope, inventory):
        ids = {p.id for p in stock_selector.list_products(admin_scope)}
        assert inventory["orphan"].id not in ids

    def test_low_stock_products(self, stock_selector, admin_scope, inventory):
        names = [p.name for p in stock_selector.low_stock_products(admin_scope)]
        assert names == ["Broca", "Cabo"]

    def test_explicit_selection_narrows_matriz_admin(
        self, stock_selector, make_actor, matriz, branch_b, inventory
    ):
        scope = resolve_scope(make_actor(roles=(Role.ADMIN,), home=matriz), branch_b.id)
        names = [p.name for p in stock_selector.list_products(scope)]
        assert names == ["Cabo", "Disjuntor"]


class TestAggregates:
    def test_summary_excludes_unbranched(self, stock_selector, admin_scope, inventory):
        summary = stock_selector.stock_summary(admin_scope)

        assert summary.product_count == 4
        assert summary.total_units == 18
        assert summary.low_stock_count == 2
        assert summary.out_of_stock_count == 1

    def test_summary_for_branch(self, stock_selector, branch_scope, branch_b, inventory):
        summary = stock_selector.stock_summary(branch_scope(branch_b))

        assert summary.product_count == 2
        assert summary.total_units == 7
        assert summary.out_of_stock_count == 1

    def test_branch_stats_matriz_first(self, stock_selector, admin_scope, matriz, branch_a, branch_b, inventory):
        stats = stock_selector.branch_stock_stats(admin_scope)

        assert [s.branch_name for s in stats] == ["Matriz", "Filial A", "Filial B"]
        by_id = {s.branch_id: s for s in stats}
        assert by_id[matriz.id].product_count == 0
        assert by_id[branch_a.id].total_units == 11
        assert by_id[branch_a.id].low_stock_count == 1
        assert by_id[branch_b.id].product_count == 2

    def test_branch_stats_for_filtered_scope(self, stock_selector, branch_scope, branch_a, inventory):
        stats = stock_selector.branch_stock_stats(branch_scope(branch_a))
        assert [s.branch_id for s in stats] == [branch_a.id]


class TestMovementHistory:
    def test_newest_first(self, stock_selector, ledger, clock, admin_scope, context, create_product):
        product = create_product(stock=5)
        clock.advance(60)
        ledger.record_movement([MovementItem(product.id, 1)], MovementType.SAIDA, admin_scope, context)
        clock.advance(60)
        ledger.record_movement([MovementItem(product.id, 2)], MovementType.ENTRADA, admin_scope, context)

        history = stock_selector.movement_history(admin_scope, product_id=product.id)

        assert [m.movement_type for m in history] == [
            MovementType.ENTRADA,
            MovementType.SAIDA,
            MovementType.ENTRADA,
        ]

    def test_limit(self, stock_selector, ledger, admin_scope, context, create_product):
        product = create_product(stock=5)
        for _ in range(3):
            ledger.record_movement([MovementItem(product.id, 1)], "saida", admin_scope, context)

        assert len(stock_selector.movement_history(admin_scope, product_id=product.id, limit=2)) == 2

    def test_invalid_limit(self, stock_selector, admin_scope):
        with pytest.raises(ValidationError):
            stock_selector.movement_history(admin_scope, limit=0)

    def test_branch_scope_sees_own_movements(
        self, stock_selector, branch_scope, branch_a, branch_b, create_product
    ):
        mine = create_product(stock=1, branch=branch_a)
        create_product(stock=1, branch=branch_b)

        history = stock_selector.movement_history(branch_scope(branch_a))
        assert [m.product_id for m in history] == [mine.id]


class TestSerializedUnitOwnership:
    @pytest.fixture
    def field_setup(
        self, session, create_product, product_service, ledger, admin_scope, actor_id,
        create_team, create_technician, branch_a,
    ):
        """
        Supervisor S leads team X (member M); technician O is outside the team.
        One unit is checked out to each of S, M and O; a fourth stays in stock.
        """
        supervisor_user = actor_id
        supervisor = create_technician("S", branch=branch_a, user_id=supervisor_user)
        team = create_team("X", leader_id=supervisor.id)
        member = create_technician("M", branch=branch_a, team=team)
        outsider = create_technician("O", branch=branch_a)

        product = create_product(is_serialized=True, branch=branch_a)
        units = product_service.receive_serialized_units(
            admin_scope, MovementContext(actor_id=actor_id), product.id, ["U-S", "U-M", "U-O", "U-FREE"]
        )
        by_serial = {u.serial_number: u for u in units}
        for serial, tech in (("U-S", supervisor), ("U-M", member), ("U-O", outsider)):
            ledger.record_movement(
                [MovementItem(product.id, 1, by_serial[serial].id)],
                MovementType.SAIDA,
                admin_scope,
                MovementContext(actor_id=actor_id, technician_id=tech.id),
            )
        return {"supervisor": supervisor, "member": member, "team": team, "product": product}

    def _serials(self, units):
        return sorted(u.serial_number for u in units)

    def test_director_level_sees_all(self, stock_selector, admin_scope, field_setup):
        assert self._serials(stock_selector.serialized_units(admin_scope)) == ["U-FREE", "U-M", "U-O", "U-S"]

    def test_status_filter(self, stock_selector, admin_scope, field_setup):
        units = stock_selector.serialized_units(admin_scope, status=SerialStatus.DISPONIVEL)
        assert self._serials(units) == ["U-FREE"]

    def test_supervisor_sees_own_and_team_units(self, stock_selector, make_actor, branch_a, field_setup):
        scope = resolve_scope(
            make_actor(
                roles=(Role.TECHNICIAN,),
                home=branch_a,
                technician_id=field_setup["supervisor"].id,
                technician_led_team_ids=(field_setup["team"].id,),
            )
        )

        assert self._serials(stock_selector.serialized_units(scope)) == ["U-M", "U-S"]

    def test_technician_sees_own_units(self, stock_selector, make_actor, branch_a, field_setup):
        scope = resolve_scope(
            make_actor(roles=(Role.TECHNICIAN,), home=branch_a, technician_id=field_setup["member"].id)
        )

        assert self._serials(stock_selector.serialized_units(scope)) == ["U-M"]

    def test_manager_sees_branch_units(self, stock_selector, branch_scope, branch_a, field_setup):
        units = stock_selector.serialized_units(branch_scope(branch_a), product_id=field_setup["product"].id)
        assert len(units) == 4

    def test_other_branch_sees_none(self, stock_selector, branch_scope, branch_b, field_setup):
        assert stock_selector.serialized_units(branch_scope(branch_b)) == []
