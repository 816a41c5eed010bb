# rental_api/models/enum.py
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    OWNER = "owner"        # Lists products and confirms pickups/returns for them
    CUSTOMER = "customer"


class CustomerType(str, Enum):
    REGULAR = "regular"
    VIP = "vip"
    CORPORATE = "corporate"
    PARTNER = "partner"


class BookingStatus(str, Enum):
    RESERVED = "reserved"
    PICKED_UP = "picked_up"
    LATE = "late"           # Picked up and past end_date, set by the scheduler
    RETURNED = "returned"
    CANCELLED = "cancelled"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ReturnCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    DAMAGED = "damaged"


class PenaltyType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class RuleOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_EQUAL = "greater_than_equal"
    LESS_THAN_EQUAL = "less_than_equal"
    CONTAINS = "contains"
    IN = "in"


class EffectType(str, Enum):
    PERCENT_DISCOUNT = "percentDiscount"
    FLAT_DISCOUNT = "flatDiscount"
    SET_PRICE = "setPrice"
    TIERED_PRICE = "tieredPrice"
    SURCHARGE = "surcharge"


class ApplyTo(str, Enum):
    UNIT = "unit"
    TOTAL = "total"


class SettlementStatus(str, Enum):
    FULL_REFUND = "FULL_REFUND"
    PENALTY_APPLIED = "PENALTY_APPLIED"


class StationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
