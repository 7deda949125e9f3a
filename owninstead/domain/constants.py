"""
Spending categories and classification tables.

Merchant table order matters: the classifier returns the first category
whose merchant list hits, so broad names (``uber``) sit after the more
specific ones (``uber eats``).
"""

from decimal import Decimal
from typing import Dict, List, Tuple


CATEGORY_LABELS: Dict[str, str] = {
    "delivery": "Food Delivery",
    "coffee": "Coffee Shops",
    "rideshare": "Rideshare",
    "restaurants": "Restaurants",
    "bars": "Bars & Nightlife",
    "shopping": "Shopping",
    "entertainment": "Entertainment",
    "subscriptions": "Subscriptions",
    "custom": "Custom",
}

CATEGORY_MERCHANTS: Tuple[Tuple[str, List[str]], ...] = (
    ("delivery", [
        "doordash",
        "uber eats",
        "ubereats",
        "grubhub",
        "postmates",
        "seamless",
        "caviar",
        "instacart",
    ]),
    ("coffee", [
        "starbucks",
        "dunkin",
        "peet",
        "blue bottle",
        "philz",
        "coffee bean",
        "caribou coffee",
    ]),
    ("rideshare", ["uber", "lyft", "via"]),
    ("restaurants", []),  # provider category only
    ("bars", ["bar", "pub", "tavern", "brewery", "winery"]),
    ("shopping", ["amazon", "target", "walmart", "costco", "best buy"]),
    ("entertainment", ["netflix", "spotify", "hulu", "disney+", "hbo", "apple tv"]),
    ("subscriptions", []),  # provider category only
)

PROVIDER_CATEGORY_MAPPING: Tuple[Tuple[str, str], ...] = (
    ("Food and Drink > Restaurants", "restaurants"),
    ("Food and Drink > Coffee Shop", "coffee"),
    ("Food and Drink > Bar", "bars"),
    ("Travel > Taxi", "rideshare"),
    ("Shops > Supermarkets and Groceries", "shopping"),
    ("Recreation > Arts and Entertainment", "entertainment"),
    ("Service > Subscription", "subscriptions"),
)

SUPPORTED_ASSETS: Dict[str, str] = {
    "VTI": "Vanguard Total Stock Market ETF",
    "VOO": "Vanguard S&P 500 ETF",
    "SPY": "SPDR S&P 500 ETF Trust",
}

DEFAULT_ASSET = "VTI"
DEFAULT_MAX_PER_TRADE = Decimal("100")
DEFAULT_MAX_PER_MONTH = Decimal("500")

STREAK_BONUS_RATE = Decimal("0.10")
STREAK_MILESTONES = (3, 5, 10, 25, 52)
