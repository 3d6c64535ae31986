from datetime import datetime, timedelta, timezone
from decimal import Decimal

from tlh_rebalancer import SecurityPosition, Transaction, WashSaleRestriction
from tlh_rebalancer.restrictions import (
    RestrictionChecker,
    legacy_sell_blocked,
    sorted_by_rank,
    wash_sale_from_transactions,
)

AS_OF = datetime(2024, 6, 1, 12, 0)


def position(security_id, rank=None, **kwargs):
    return SecurityPosition(
        security_id=security_id,
        current_qty=kwargs.pop("current_qty", Decimal("10")),
        target_pct=kwargs.pop("target_pct", Decimal("50")),
        price=kwargs.pop("price", Decimal("100")),
        account_id="acct-1",
        rank=rank,
        **kwargs,
    )


def loss_sale(ticker, days_ago, gain="-50", account_type="TAXABLE"):
    return Transaction(
        ticker=ticker,
        type="SELL",
        executed_at=AS_OF - timedelta(days=days_ago),
        realized_gain_loss=Decimal(gain),
        account_type=account_type,
    )


class TestWashSaleFromTransactions:
    def test_recent_loss_sale_restricts(self):
        restriction = wash_sale_from_transactions("VTI", [loss_sale("VTI", 10)], AS_OF)
        assert restriction is not None
        assert restriction.restricted_until == AS_OF - timedelta(days=10) + timedelta(days=31)
        assert restriction.reason == "Tax loss harvested on 2024-05-22, 21 days remaining"

    def test_old_sale_ignored(self):
        assert wash_sale_from_transactions("VTI", [loss_sale("VTI", 40)], AS_OF) is None

    def test_gain_sale_ignored(self):
        assert wash_sale_from_transactions("VTI", [loss_sale("VTI", 5, gain="20")], AS_OF) is None

    def test_retirement_account_ignored(self):
        txs = [loss_sale("VTI", 5, account_type="IRA")]
        assert wash_sale_from_transactions("VTI", txs, AS_OF) is None

    def test_latest_sale_wins(self):
        txs = [loss_sale("VTI", 20), loss_sale("VTI", 3)]
        restriction = wash_sale_from_transactions("VTI", txs, AS_OF)
        assert restriction.restricted_until == AS_OF + timedelta(days=28)


class TestRestrictionChecker:
    def test_unrestricted_by_default(self):
        checker = RestrictionChecker(as_of=AS_OF)
        assert checker.is_purchasable("VTI")
        assert not checker.is_restricted("VTI").is_restricted

    def test_explicit_restriction(self):
        checker = RestrictionChecker(
            [WashSaleRestriction("VTI", AS_OF + timedelta(days=5), "manual")], as_of=AS_OF
        )
        result = checker.is_restricted("VTI")
        assert result.is_restricted
        assert result.reason == "manual"
        assert checker.restricted_tickers() == {"VTI"}

    def test_expired_restriction_ignored(self):
        checker = RestrictionChecker(
            [WashSaleRestriction("VTI", AS_OF - timedelta(days=1))], as_of=AS_OF
        )
        assert checker.is_purchasable("VTI")
        assert checker.all_restrictions() == []

    def test_derived_from_transactions(self):
        checker = RestrictionChecker(transactions=[loss_sale("BND", 2)], as_of=AS_OF)
        assert not checker.is_purchasable("BND")

    def test_explicit_takes_precedence(self):
        explicit = WashSaleRestriction("VTI", AS_OF + timedelta(days=2), "explicit")
        checker = RestrictionChecker([explicit], [loss_sale("VTI", 1)], as_of=AS_OF)
        assert checker.is_restricted("VTI").restriction == explicit

    def test_aware_as_of_with_naive_restrictions(self):
        aware = datetime(2024, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        checker = RestrictionChecker(
            [WashSaleRestriction("VTI", AS_OF + timedelta(hours=1))],
            [loss_sale("BND", 2)],
            as_of=aware,
        )
        assert checker.as_of == AS_OF
        assert checker.restricted_tickers() == {"VTI", "BND"}

    def test_aware_transactions_against_naive_as_of(self):
        tx = Transaction(
            ticker="VTI",
            type="SELL",
            executed_at=datetime(2024, 5, 30, 12, 0, tzinfo=timezone.utc),
            realized_gain_loss=Decimal("-5"),
            account_type="TAXABLE",
        )
        restriction = wash_sale_from_transactions("VTI", [tx], AS_OF)
        assert restriction.restricted_until == datetime(2024, 6, 30, 12, 0)

    def test_only_buys_are_blocked(self):
        checker = RestrictionChecker(
            [WashSaleRestriction("VTI", AS_OF + timedelta(days=5))], as_of=AS_OF
        )
        assert not checker.validate_trade("VTI", "BUY").is_allowed
        assert checker.validate_trade("VTI", "SELL").is_allowed
        assert checker.validate_trade("ITOT", "BUY").is_allowed

    def test_filter_purchasable(self):
        checker = RestrictionChecker(
            [WashSaleRestriction("VTI", AS_OF + timedelta(days=5))], as_of=AS_OF
        )
        kept = checker.filter_purchasable([position("VTI"), position("ITOT")])
        assert [sec.security_id for sec in kept] == ["ITOT"]

    def test_lowest_ranked_purchasable(self):
        checker = RestrictionChecker(
            [WashSaleRestriction("VTI", AS_OF + timedelta(days=5))], as_of=AS_OF
        )
        securities = [position("SCHB", rank=3), position("VTI", rank=1), position("ITOT", rank=2)]
        assert checker.lowest_ranked_purchasable(securities).security_id == "ITOT"

    def test_lowest_ranked_requires_positive_target(self):
        checker = RestrictionChecker(as_of=AS_OF)
        securities = [
            position("VTI", rank=1, target_pct=Decimal("0")),
            position("ITOT", rank=2),
        ]
        best = checker.lowest_ranked_purchasable(securities, require_positive_target=True)
        assert best.security_id == "ITOT"


class TestRankOrdering:
    def test_missing_rank_sorts_last(self):
        ordered = sorted_by_rank([position("A"), position("B", rank=2), position("C", rank=0)])
        assert [sec.security_id for sec in ordered] == ["C", "B", "A"]

    def test_ties_keep_input_order(self):
        ordered = sorted_by_rank([position("A", rank=1), position("B", rank=1)])
        assert [sec.security_id for sec in ordered] == ["A", "B"]


class TestLegacySellBlocked:
    def test_non_legacy_never_blocked(self):
        checker = RestrictionChecker(as_of=AS_OF)
        sec = position("VTI", is_taxable=True, unrealized_gain=Decimal("100"))
        assert not legacy_sell_blocked(sec, checker)

    def test_legacy_with_taxable_gain(self):
        checker = RestrictionChecker(as_of=AS_OF)
        sec = position("VTI", is_legacy=True, is_taxable=True, unrealized_gain=Decimal("100"))
        assert legacy_sell_blocked(sec, checker)

    def test_legacy_restricted(self):
        checker = RestrictionChecker(
            [WashSaleRestriction("VTI", AS_OF + timedelta(days=5))], as_of=AS_OF
        )
        sec = position("VTI", is_legacy=True, unrealized_gain=Decimal("-20"))
        assert legacy_sell_blocked(sec, checker)

    def test_legacy_loss_can_be_sold(self):
        checker = RestrictionChecker(as_of=AS_OF)
        sec = position("VTI", is_legacy=True, is_taxable=True, unrealized_gain=Decimal("-20"))
        assert not legacy_sell_blocked(sec, checker)
