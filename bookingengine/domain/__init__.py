"""
Domain layer - Pure availability and pricing logic without external dependencies.
"""

from .fees import FeeCalculator
from .geo_matcher import filter_providers, haversine_distance, is_served_by, point_in_polygon
from .models import (
    BusinessRules,
    Commitment,
    DurationRule,
    GeoPoint,
    PricingRule,
    Provider,
    QuoteDay,
    ServiceArea,
    TimeOff,
    TimeRange,
    WorkingWindow,
)
from .pricing import PricingRuleEngine, ensure_rule_table_consistent
from .quote import Quote, QuoteStatus, QuoteTimeValidator
from .slot_generator import SlotGenerator

__all__ = [
    "BusinessRules",
    "Commitment",
    "DurationRule",
    "FeeCalculator",
    "GeoPoint",
    "PricingRule",
    "PricingRuleEngine",
    "Provider",
    "Quote",
    "QuoteDay",
    "QuoteStatus",
    "QuoteTimeValidator",
    "ServiceArea",
    "SlotGenerator",
    "TimeOff",
    "TimeRange",
    "WorkingWindow",
    "ensure_rule_table_consistent",
    "filter_providers",
    "haversine_distance",
    "is_served_by",
    "point_in_polygon",
]
