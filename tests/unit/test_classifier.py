from datetime import date
from decimal import Decimal

import pytest

from owninstead.domain.models import InvestType, Rule, RuleCategory, Transaction
from owninstead.domain.services.classifier import TransactionClassifier


def _tx(tx_id="tx-1", amount="10", merchant="DoorDash", labels=(), excluded=False):
    return Transaction(
        id=tx_id,
        amount=Decimal(amount),
        merchant_name=merchant,
        category_labels=tuple(labels),
        date=date(2026, 3, 3),
        excluded=excluded,
    )


def _rule(category=RuleCategory.DELIVERY, merchant_pattern=None):
    return Rule(
        id="rule-1",
        user_id="user-1",
        category=category,
        target_spend=Decimal("50"),
        invest_type=InvestType.DIFFERENCE,
        merchant_pattern=merchant_pattern,
    )


@pytest.fixture()
def classifier():
    return TransactionClassifier()


@pytest.mark.parametrize(
    "merchant, expected",
    [
        ("DOORDASH*CHIPOTLE", RuleCategory.DELIVERY),
        ("Uber Eats", RuleCategory.DELIVERY),
        ("UBER   TRIP 1234", RuleCategory.RIDESHARE),
        ("Starbucks #221", RuleCategory.COFFEE),
        ("Netflix.com", RuleCategory.ENTERTAINMENT),
        ("Amazon Mktp", RuleCategory.SHOPPING),
    ],
)
def test_merchant_table_classification(classifier, merchant, expected):
    assert classifier.classify(_tx(merchant=merchant)) == expected


def test_specific_merchant_wins_over_broad_one(classifier):
    # "uber eats" is listed under delivery before "uber" under rideshare
    assert classifier.classify(_tx(merchant="UBER EATS ORDER")) == RuleCategory.DELIVERY


def test_provider_category_used_when_merchant_unknown(classifier):
    tx = _tx(merchant="Joe's Diner", labels=("Food and Drink", "Restaurants"))
    assert classifier.classify(tx) == RuleCategory.RESTAURANTS


def test_merchant_table_beats_provider_category(classifier):
    tx = _tx(merchant="Starbucks", labels=("Food and Drink", "Restaurants"))
    assert classifier.classify(tx) == RuleCategory.COFFEE


def test_unknown_transaction_is_unclassified(classifier):
    assert classifier.classify(_tx(merchant="City Water Utility", labels=("Service", "Utilities"))) is None
    assert classifier.classify(_tx(merchant=None)) is None


def test_excluded_transaction_never_classifies_or_matches(classifier):
    tx = _tx(merchant="DoorDash", excluded=True)
    assert classifier.classify(tx) is None
    assert not classifier.matches(tx, _rule())
    assert not classifier.matches(tx, _rule(merchant_pattern="doordash"))


def test_merchant_pattern_bypasses_category(classifier):
    rule = _rule(category=RuleCategory.CUSTOM, merchant_pattern="Sweetgreen")

    assert classifier.matches(_tx(merchant="SWEETGREEN SOMA"), rule)
    assert not classifier.matches(_tx(merchant="DoorDash"), rule)


def test_filter_matching_keeps_order(classifier):
    txs = [
        _tx("tx-1", merchant="DoorDash"),
        _tx("tx-2", merchant="Starbucks"),
        _tx("tx-3", merchant="Grubhub"),
    ]
    matching = classifier.filter_matching(txs, _rule())
    assert [tx.id for tx in matching] == ["tx-1", "tx-3"]


def test_group_by_category_and_spend(classifier):
    txs = [
        _tx("tx-1", "12.50", merchant="DoorDash"),
        _tx("tx-2", "4.25", merchant="Starbucks"),
        _tx("tx-3", "7.50", merchant="Postmates"),
        _tx("tx-4", "99", merchant="Landlord LLC"),
    ]
    grouped = classifier.group_by_category(txs)

    assert set(grouped) == {RuleCategory.DELIVERY, RuleCategory.COFFEE}
    assert classifier.category_spend(txs, RuleCategory.DELIVERY) == Decimal("20.00")


def test_custom_tables_are_respected():
    classifier = TransactionClassifier(
        merchant_table=(("coffee", ["corner cafe"]),),
        provider_mapping=(),
    )
    assert classifier.classify(_tx(merchant="The Corner Cafe")) == RuleCategory.COFFEE
    assert classifier.classify(_tx(merchant="Starbucks")) is None
