"""
Unit tests for the position ledger borrower operations.
"""

import unittest

from ledger_helpers import check_debt_backed, check_invariants, dec, ledger_state, make_ledger, open_position
from errors import (
    ICRBelowMCR,
    InsufficientBalance,
    InsufficientCollateralBalance,
    ListFull,
    MaxFeeExceeded,
    MaxFeeOutOfRange,
    NetDebtBelowMinimum,
    OnlyOnePositionInSystem,
    PositionAlreadyActive,
    PositionNotActive,
    RepaymentExceedsDebt,
    WithdrawalExceedsCollateral,
    ZeroAdjustment,
    ZeroDebtChange,
    ZeroId,
)
from fixed_point_math import DECIMAL_PRECISION, ONE_HUNDRED_PCT, compute_nominal_cr, mul_div
from ledger_config import LedgerConfig
from position_types import Status

# Long enough for any base rate to decay to 0
SIXTY_DAYS = 60 * 24 * 60 * 60


class LedgerTestCase(unittest.TestCase):
    """Ledger with a well collateralized whale and a fully decayed base rate."""

    def setUp(self):
        self.ledger, self.clock = make_ledger(price=200)
        self.whale = "whale"
        self.alice = "alice"
        self.bob = "bob"
        self.carol = "carol"

        # 100 ETH against 5050 debt
        open_position(self.ledger, self.whale, dec(100), debt_amount=dec(5000))
        self.settle()

    def settle(self):
        self.clock.advance(SIXTY_DAYS)

    def open(self, owner, coll, amount):
        """Opens a position free of borrowing fee."""
        self.settle()
        return open_position(self.ledger, owner, dec(coll), debt_amount=dec(amount))


class TestOpenPosition(LedgerTestCase):

    def test_open_position_records_state(self):
        ledger = self.ledger
        self.open(self.alice, 2, 100)

        position = ledger.get_position(self.alice)
        self.assertEqual(position.status, Status.ACTIVE)
        self.assertEqual(position.coll, dec(2))
        self.assertEqual(position.debt, dec(150))
        self.assertEqual(position.stake, dec(2))
        self.assertEqual(ledger.total_stakes, dec(102))

        snapshot = ledger.get_reward_snapshot(self.alice)
        self.assertEqual((snapshot.coll, snapshot.debt), (0, 0))

        self.assertTrue(ledger.sorted_positions.contains(self.alice))
        self.assertEqual(ledger.get_position_from_array(1), self.alice)
        self.assertEqual(position.array_index, 1)

        # Tokens: requested amount to the owner, reserve to the gas pool
        self.assertEqual(ledger.debt_token.balance_of(self.alice), dec(100))
        self.assertEqual(ledger.debt_token.balance_of(ledger.config.gas_pool), dec(100))
        self.assertEqual(ledger.debt_token.balance_of(ledger.config.fee_recipient), 0)

        # Collateral moved into custody
        self.assertEqual(ledger.collateral_token.balance_of(self.alice), 0)
        self.assertEqual(ledger.collateral_token.balance_of(ledger.collateral_token.custodian), dec(102))
        self.assertEqual(ledger.active_pool.get_coll_balance(), dec(102))
        self.assertEqual(ledger.active_pool.get_debt(), dec(5200))

        check_invariants(self, ledger)
        check_debt_backed(self, ledger)

    def test_composite_and_net_debt(self):
        ledger = self.ledger
        reserve = ledger.config.debt_gas_compensation
        self.assertEqual(reserve, dec(50))
        self.assertEqual(ledger.get_composite_debt(dec(100)), dec(150))
        self.assertEqual(ledger.get_net_debt(dec(150)), dec(100))
        self.assertEqual(ledger.get_net_debt(ledger.get_composite_debt(dec(7))), dec(7))

    def test_open_bumps_base_rate(self):
        self.open(self.alice, 2, 100)
        expected = mul_div(dec(100), DECIMAL_PRECISION, dec(5200)) // 2
        self.assertEqual(self.ledger.fee_engine.base_rate, expected)

    def test_open_charges_decayed_base_rate(self):
        ledger = self.ledger
        ledger.fee_engine.set_base_rate(dec(0.02))
        self.clock.advance(3600)

        rate = ledger.fee_engine.get_borrowing_rate_with_decay()
        self.assertLess(rate, dec(0.02))
        fee = rate * dec(100) // DECIMAL_PRECISION

        open_position(ledger, self.alice, dec(2), debt_amount=dec(100))

        self.assertEqual(ledger.get_position_debt(self.alice), dec(100) + fee + dec(50))
        self.assertEqual(ledger.debt_token.balance_of(ledger.config.fee_recipient), fee)
        check_debt_backed(self, ledger)

    def test_open_rejects_active_position(self):
        self.open(self.alice, 2, 100)
        with self.assertRaises(PositionAlreadyActive):
            self.open(self.alice, 2, 100)

    def test_open_below_mcr_changes_nothing(self):
        ledger = self.ledger
        base_rate = ledger.fee_engine.base_rate
        last_fee_op = ledger.fee_engine.last_fee_operation_time

        # 1 ETH at 200 against 190 debt
        with self.assertRaises(ICRBelowMCR):
            open_position(ledger, self.alice, dec(1), debt_amount=dec(140))

        self.assertFalse(ledger.is_active(self.alice))
        self.assertEqual(ledger.total_stakes, dec(100))
        self.assertEqual(ledger.collateral_token.balance_of(self.alice), dec(1))
        self.assertEqual(ledger.fee_engine.base_rate, base_rate)
        self.assertEqual(ledger.fee_engine.last_fee_operation_time, last_fee_op)
        self.assertEqual(ledger.get_position_owners_count(), 1)

    def test_open_below_min_net_debt(self):
        with self.assertRaises(NetDebtBelowMinimum):
            self.open(self.alice, 2, 49)

    def test_open_max_fee_out_of_range(self):
        with self.assertRaises(MaxFeeOutOfRange):
            open_position(self.ledger, self.alice, dec(2), debt_amount=dec(100),
                          max_fee=ONE_HUNDRED_PCT + 1)

    def test_open_fee_above_max_changes_nothing(self):
        ledger = self.ledger
        ledger.fee_engine.set_base_rate(dec(0.05))

        with self.assertRaises(MaxFeeExceeded):
            open_position(ledger, self.alice, dec(2), debt_amount=dec(100), max_fee=dec(0.01))

        self.assertFalse(ledger.is_active(self.alice))
        self.assertEqual(ledger.fee_engine.base_rate, dec(0.05))
        self.assertEqual(ledger.debt_token.balance_of(self.alice), 0)

    def test_open_without_collateral(self):
        with self.assertRaises(InsufficientCollateralBalance):
            open_position(self.ledger, self.alice, dec(2), debt_amount=dec(100), fund=False)

    def test_open_when_list_is_full(self):
        ledger, _ = make_ledger(config=LedgerConfig(max_list_size=1))
        open_position(ledger, self.alice, dec(2), debt_amount=dec(100))
        with self.assertRaises(ListFull):
            open_position(ledger, self.bob, dec(2), debt_amount=dec(100))

    def test_open_with_borrowing_spread(self):
        ledger, _ = make_ledger(config=LedgerConfig(borrowing_spread=dec(0.005)))

        with self.assertRaises(MaxFeeOutOfRange):
            open_position(ledger, self.alice, dec(20), debt_amount=dec(1000), max_fee=dec(0.004))

        open_position(ledger, self.alice, dec(20), debt_amount=dec(1000), max_fee=dec(0.01))
        self.assertEqual(ledger.debt_token.balance_of(ledger.config.fee_recipient), dec(5))
        self.assertEqual(ledger.get_position_debt(self.alice), dec(1055))

    def test_reopen_after_close(self):
        ledger = self.ledger
        self.open(self.alice, 2, 100)
        ledger.close_position(self.alice)

        self.open(self.alice, 3, 100)
        position = ledger.get_position(self.alice)
        self.assertEqual(position.status, Status.ACTIVE)
        self.assertEqual(position.coll, dec(3))
        check_invariants(self, ledger)


class TestAdjustPosition(LedgerTestCase):
    def setUp(self):
        super().setUp()
        # 2 ETH against 150 debt
        self.open(self.alice, 2, 100)

    def test_add_coll(self):
        ledger = self.ledger
        ledger.collateral_token.mint(self.alice, dec(1))
        ledger.add_coll(self.alice, dec(1))

        self.assertEqual(ledger.get_position_coll(self.alice), dec(3))
        self.assertEqual(ledger.get_position_stake(self.alice), dec(3))
        self.assertEqual(ledger.total_stakes, dec(103))
        self.assertEqual(ledger.active_pool.get_coll_balance(), dec(103))
        # 3 / 150 beats the whale's 100 / 5050
        self.assertEqual(ledger.sorted_positions.get_first(), self.alice)
        check_invariants(self, ledger)

    def test_add_coll_without_balance(self):
        with self.assertRaises(InsufficientCollateralBalance):
            self.ledger.add_coll(self.alice, dec(1))

    def test_withdraw_coll(self):
        ledger = self.ledger
        ledger.withdraw_coll(self.alice, dec(0.5))

        self.assertEqual(ledger.get_position_coll(self.alice), dec(1.5))
        self.assertEqual(ledger.collateral_token.balance_of(self.alice), dec(0.5))
        self.assertEqual(ledger.get_current_icr(self.alice), dec(2))
        check_invariants(self, ledger)

    def test_withdraw_coll_exceeding_position(self):
        with self.assertRaises(WithdrawalExceedsCollateral):
            self.ledger.withdraw_coll(self.alice, dec(3))

    def test_withdraw_coll_below_mcr(self):
        with self.assertRaises(ICRBelowMCR):
            self.ledger.withdraw_coll(self.alice, dec(1.2))
        self.assertEqual(self.ledger.get_position_coll(self.alice), dec(2))

    def test_withdraw_debt_charges_fee(self):
        ledger = self.ledger
        fee = ledger.fee_engine.get_borrowing_fee_with_decay(dec(50))
        self.assertGreater(fee, 0)

        ledger.withdraw_debt(self.alice, dec(50))

        self.assertEqual(ledger.get_position_debt(self.alice), dec(200) + fee)
        self.assertEqual(ledger.debt_token.balance_of(self.alice), dec(150))
        self.assertEqual(ledger.debt_token.balance_of(ledger.config.fee_recipient), fee)
        check_debt_backed(self, ledger)

    def test_withdraw_debt_above_max_fee(self):
        self.ledger.fee_engine.set_base_rate(dec(0.05))
        with self.assertRaises(MaxFeeExceeded):
            self.ledger.withdraw_debt(self.alice, dec(50), max_fee_percentage=dec(0.01))
        self.assertEqual(self.ledger.get_position_debt(self.alice), dec(150))

    def test_repay_debt(self):
        ledger = self.ledger
        ledger.repay_debt(self.alice, dec(40))

        self.assertEqual(ledger.get_position_debt(self.alice), dec(110))
        self.assertEqual(ledger.debt_token.balance_of(self.alice), dec(60))
        check_debt_backed(self, ledger)
        check_invariants(self, ledger)

    def test_repay_more_than_net_debt(self):
        with self.assertRaises(RepaymentExceedsDebt):
            self.ledger.repay_debt(self.alice, dec(101))

    def test_repay_below_min_net_debt(self):
        with self.assertRaises(NetDebtBelowMinimum):
            self.ledger.repay_debt(self.alice, dec(60))

    def test_repay_without_balance(self):
        self.ledger.debt_token.transfer(self.alice, self.whale, dec(80))
        with self.assertRaises(InsufficientBalance):
            self.ledger.repay_debt(self.alice, dec(40))

    def test_zero_adjustment(self):
        with self.assertRaises(ZeroAdjustment):
            self.ledger.adjust_position(self.alice)
        with self.assertRaises(ZeroDebtChange):
            self.ledger.adjust_position(self.alice, 0, False, 0, True)
        with self.assertRaises(ZeroDebtChange):
            self.ledger.adjust_position(self.alice, dec(1), True, 0, True)

    def test_adjust_inactive_position(self):
        with self.assertRaises(PositionNotActive):
            self.ledger.add_coll("nobody", dec(1))

    def test_adjust_with_hints(self):
        ledger = self.ledger
        ledger.collateral_token.mint(self.alice, dec(1))
        nicr = compute_nominal_cr(dec(3), dec(150))
        upper, lower = ledger.sorted_positions.find_insert_position(nicr)

        ledger.add_coll(self.alice, dec(1), upper, lower)
        self.assertEqual(list(ledger.sorted_positions), [self.alice, self.whale])


class TestClosePosition(LedgerTestCase):
    def setUp(self):
        super().setUp()
        self.open(self.alice, 2, 100)
        self.open(self.bob, 2, 100)

    def test_close_position(self):
        ledger = self.ledger
        returned = ledger.close_position(self.alice)

        self.assertEqual(returned, dec(2))
        position = ledger.get_position(self.alice)
        self.assertEqual(position.status, Status.CLOSED_BY_OWNER)
        self.assertEqual((position.coll, position.debt, position.stake), (0, 0, 0))
        self.assertEqual(ledger.total_stakes, dec(102))
        self.assertFalse(ledger.sorted_positions.contains(self.alice))

        self.assertEqual(ledger.collateral_token.balance_of(self.alice), dec(2))
        self.assertEqual(ledger.debt_token.balance_of(self.alice), 0)
        # Whale and bob reserves remain
        self.assertEqual(ledger.debt_token.balance_of(ledger.config.gas_pool), dec(100))

        check_invariants(self, ledger)
        check_debt_backed(self, ledger)

    def test_close_without_enough_tokens(self):
        ledger = self.ledger
        ledger.debt_token.transfer(self.alice, self.whale, dec(1))
        with self.assertRaises(InsufficientBalance):
            ledger.close_position(self.alice)
        self.assertTrue(ledger.is_active(self.alice))
        self.assertEqual(ledger.total_stakes, dec(104))

    def test_close_inactive_position(self):
        with self.assertRaises(PositionNotActive):
            self.ledger.close_position(self.carol)

    def test_close_record_requires_closed_status(self):
        for status in (Status.ACTIVE, Status.NON_EXISTENT):
            with self.assertRaises(ValueError):
                self.ledger.close_position_record(self.alice, status)
        self.assertTrue(self.ledger.is_active(self.alice))
        check_invariants(self, self.ledger)

    def test_close_last_position(self):
        ledger, _ = make_ledger()
        open_position(ledger, self.alice, dec(2), debt_amount=dec(100))
        with self.assertRaises(OnlyOnePositionInSystem):
            ledger.close_position(self.alice)

    def test_owner_array_swap_and_pop(self):
        ledger = self.ledger
        self.open(self.carol, 2, 100)
        self.assertEqual(ledger.position_owners, [self.whale, self.alice, self.bob, self.carol])

        ledger.close_position(self.alice)

        self.assertEqual(ledger.position_owners, [self.whale, self.carol, self.bob])
        self.assertEqual(ledger.get_position(self.carol).array_index, 1)
        self.assertEqual(ledger.get_position_from_array(1), self.carol)
        self.assertEqual(ledger.get_position_owners_count(), 3)
        with self.assertRaises(IndexError):
            ledger.get_position_from_array(3)
        check_invariants(self, ledger)


class TestRejectedOperationsChangeNothing(LedgerTestCase):
    """
    Alice and Bob: 2 ETH / 150 each, with pending rewards from Carol's
    liquidation. Base rate 1%, one hour old.
    """

    def setUp(self):
        super().setUp()
        self.dave = "dave"
        self.open(self.alice, 2, 100)
        self.open(self.bob, 2, 100)
        self.open(self.carol, 1, 100)

        self.ledger.price_feed.set_price(dec(150))
        self.ledger.liquidate(self.carol)
        self.assertGreater(self.ledger.get_pending_debt_reward(self.alice), 0)

        self.ledger.fee_engine.set_base_rate(dec(0.01))
        self.clock.advance(60 * 60)
        self.ledger.collateral_token.mint(self.dave, dec(10))

    def assert_rejected(self, error, operation, *args, **kwargs):
        before = ledger_state(self.ledger)
        with self.assertRaises(error):
            operation(*args, **kwargs)
        self.assertEqual(ledger_state(self.ledger), before)

    def test_rejected_open_with_empty_owner(self):
        ledger = self.ledger
        ledger.collateral_token.mint("", dec(5))
        self.assert_rejected(ZeroId, ledger.open_position, "", dec(5), dec(100))
        self.assert_rejected(ZeroId, ledger.open_position, None, dec(5), dec(100))
        self.assertNotIn("", ledger.positions)
        check_invariants(self, ledger)

    def test_rejected_open(self):
        ledger = self.ledger
        cases = [
            (PositionAlreadyActive, (self.alice, dec(2), dec(100)), {}),
            (MaxFeeOutOfRange, (self.dave, dec(2), dec(100)), {"max_fee_percentage": ONE_HUNDRED_PCT + 1}),
            (MaxFeeExceeded, (self.dave, dec(2), dec(100)), {"max_fee_percentage": dec(0.005)}),
            (NetDebtBelowMinimum, (self.dave, dec(2), dec(10)), {}),
            # 1 ETH at 150 against ~191 debt
            (ICRBelowMCR, (self.dave, dec(1), dec(140)), {}),
            (InsufficientCollateralBalance, (self.dave, dec(11), dec(100)), {}),
        ]
        for error, args, kwargs in cases:
            with self.subTest(error=error.__name__):
                self.assert_rejected(error, ledger.open_position, *args, **kwargs)
        check_invariants(self, ledger)

    def test_rejected_adjust(self):
        ledger = self.ledger
        cases = [
            (PositionNotActive, ledger.add_coll, (self.dave, dec(1)), {}),
            (ZeroAdjustment, ledger.adjust_position, (self.alice,), {}),
            (WithdrawalExceedsCollateral, ledger.withdraw_coll, (self.alice, dec(100)), {}),
            (ICRBelowMCR, ledger.withdraw_coll, (self.alice, dec(1.9)), {}),
            (MaxFeeExceeded, ledger.withdraw_debt, (self.alice, dec(10)), {"max_fee_percentage": dec(0.005)}),
            (RepaymentExceedsDebt, ledger.repay_debt, (self.alice, dec(1000)), {}),
            (InsufficientCollateralBalance, ledger.add_coll, (self.alice, dec(1)), {}),
        ]
        for error, operation, args, kwargs in cases:
            with self.subTest(error=error.__name__):
                self.assert_rejected(error, operation, *args, **kwargs)
        check_invariants(self, ledger)

    def test_rejected_close(self):
        ledger = self.ledger
        self.assert_rejected(PositionNotActive, ledger.close_position, self.dave)
        # The pending debt reward pushes the net debt above the 100 tokens Alice holds
        self.assert_rejected(InsufficientBalance, ledger.close_position, self.alice)
        check_invariants(self, ledger)


if __name__ == "__main__":
    unittest.main()
