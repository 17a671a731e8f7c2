"""
Property-based tests for the inventory ledger.

Random movement sequences are applied to a fresh product and compared
against a plain integer model:
- the stored balance always equals the model
- the balance never goes negative; rejected saidas change nothing
- replay reproduces the balance with an unbroken chain
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_kernel.domain.movement import MovementItem, MovementType
from stock_kernel.exceptions import InsufficientStockError

operation = st.one_of(
    st.tuples(st.just(MovementType.ENTRADA), st.integers(1, 20), st.none()),
    st.tuples(st.just(MovementType.DEVOLUCAO), st.integers(1, 20), st.none()),
    st.tuples(st.just(MovementType.SAIDA), st.integers(1, 25), st.none()),
    st.tuples(st.just(MovementType.AJUSTE), st.integers(1, 15), st.sampled_from([1, -1])),
)

ledger_settings = settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)


def _apply(ledger, product_id, op, scope, context):
    movement_type, quantity, sign = op
    delta = sign * quantity if sign is not None else None
    ledger.record_movement(
        [MovementItem(product_id, quantity, delta=delta)], movement_type, scope, context
    )


class TestLedgerProperties:
    @ledger_settings
    @given(opening=st.integers(0, 30), ops=st.lists(operation, max_size=15))
    def test_balance_tracks_model_and_replays(
        self, ledger, ledger_selector, create_product, current_stock, admin_scope, context, opening, ops
    ):
        product = create_product(stock=opening)
        expected = opening

        for op in ops:
            movement_type, quantity, sign = op
            change = {
                MovementType.ENTRADA: quantity,
                MovementType.DEVOLUCAO: quantity,
                MovementType.SAIDA: -quantity,
            }.get(movement_type, (sign or 0) * quantity)

            if expected + change < 0:
                with pytest.raises(InsufficientStockError):
                    _apply(ledger, product.id, op, admin_scope, context)
            else:
                _apply(ledger, product.id, op, admin_scope, context)
                expected += change

            assert current_stock(product.id) == expected
            assert expected >= 0

        result = ledger_selector.verify_product(admin_scope, product.id)
        assert result.is_consistent, result.breaks
        assert result.replayed_stock == expected

    @ledger_settings
    @given(stock=st.integers(0, 10), quantities=st.lists(st.integers(1, 6), min_size=1, max_size=5))
    def test_atomic_request_is_all_or_nothing(
        self, ledger, create_product, current_stock, admin_scope, context, stock, quantities
    ):
        product = create_product(stock=stock)
        items = [MovementItem(product.id, q) for q in quantities]

        if sum(quantities) > stock:
            with pytest.raises(InsufficientStockError):
                ledger.record_movement(items, MovementType.SAIDA, admin_scope, context, atomic=True)
            assert current_stock(product.id) == stock
        else:
            ledger.record_movement(items, MovementType.SAIDA, admin_scope, context, atomic=True)
            assert current_stock(product.id) == stock - sum(quantities)

    @ledger_settings
    @given(stock=st.integers(0, 10), quantities=st.lists(st.integers(1, 6), min_size=1, max_size=5))
    def test_non_atomic_request_applies_prefix(
        self, ledger, create_product, current_stock, admin_scope, context, stock, quantities
    ):
        """Items before the first failure stay applied."""
        product = create_product(stock=stock)
        items = [MovementItem(product.id, q) for q in quantities]

        remaining = stock
        fails = False
        for q in quantities:
            if q > remaining:
                fails = True
                break
            remaining -= q

        if fails:
            with pytest.raises(InsufficientStockError):
                ledger.record_movement(items, MovementType.SAIDA, admin_scope, context, atomic=False)
        else:
            ledger.record_movement(items, MovementType.SAIDA, admin_scope, context, atomic=False)
        assert current_stock(product.id) == remaining
