# tests/test_schemas.py
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from rental_api.models.booking import Booking
from rental_api.models.enum import CustomerType, EffectType, PenaltyType, ReturnCondition, UserRole
from rental_api.models.price_rule import Effect
from rental_api.models.settings import AppSettings, PenaltySettings, merge_penalty_settings
from rental_api.models.user import User

NOW = datetime(2026, 7, 1, tzinfo=timezone.utc)


def signup(**overrides):
    data = {
        "first_name": " Asha ",
        "last_name": "Rao",
        "email": "Asha@Example.com",
        "phone": "98765-43210",
        "password": "secret123",
        "confirm_password": "secret123",
        "aadhar_number": "1234 5678 9012",
    }
    data.update(overrides)
    return User.Signup(**data)


class TestSignup:
    def test_normalizes_fields(self):
        payload = signup()
        assert payload.first_name == "Asha"
        assert payload.email == "asha@example.com"
        assert payload.phone == "9876543210"
        assert payload.aadhar_number == "123456789012"

    def test_password_mismatch(self):
        with pytest.raises(ValidationError):
            signup(confirm_password="other")

    @pytest.mark.parametrize("field,value", [("phone", "12345"), ("aadhar_number", "1234"), ("first_name", "  ")])
    def test_invalid_fields(self, field, value):
        with pytest.raises(ValidationError):
            signup(**{field: value})


class TestProfileSchemas:
    def test_profile_update_keeps_unset_fields_out(self):
        update = User.ProfileUpdate(phone="91234 56789")
        assert update.model_dump(exclude_unset=True) == {"phone": "9123456789"}

    def test_profile_update_rejects_blank_name(self):
        with pytest.raises(ValidationError):
            User.ProfileUpdate(first_name="   ")

    def test_password_change_must_match(self):
        with pytest.raises(ValidationError):
            User.PasswordChange(current_password="old", new_password="newpass1", confirm_password="newpass2")

    def test_admin_update_accepts_owner_role(self):
        update = User.AdminUpdate(role="owner", customer_type="corporate")
        assert update.model_dump(exclude_unset=True) == {"role": UserRole.OWNER, "customer_type": CustomerType.CORPORATE}


class TestBookingSchemas:
    def test_quote_requires_end_after_start(self):
        with pytest.raises(ValidationError):
            Booking.Quote(product_id="x", start_date=NOW, end_date=NOW)

    def test_quote_rejects_zero_units(self):
        with pytest.raises(ValidationError):
            Booking.Quote(product_id="x", start_date=NOW, end_date=NOW + timedelta(hours=2), unit_count=0)

    def test_return_defaults_to_good_condition(self):
        assert Booking.ReturnConfirm().condition == ReturnCondition.GOOD

    def test_update_rejects_zero_units(self):
        with pytest.raises(ValidationError):
            Booking.Update(unit_count=0)

    def test_update_fields_are_optional(self):
        assert Booking.Update(notes="gate 2").model_dump(exclude_unset=True) == {"notes": "gate 2"}


class TestPenaltySettings:
    def test_percentage_over_100_rejected(self):
        with pytest.raises(ValidationError):
            AppSettings.PenaltyUpdate(damage_penalty_rate=150, damage_penalty_type=PenaltyType.PERCENTAGE)

    def test_fixed_over_100_allowed(self):
        update = AppSettings.PenaltyUpdate(damage_penalty_rate=500, damage_penalty_type=PenaltyType.FIXED)
        merged = merge_penalty_settings(PenaltySettings(), update)
        assert merged.damage_penalty_rate == 500
        assert merged.damage_penalty_type == PenaltyType.FIXED

    def test_merge_checks_against_stored_type(self):
        # Rate alone is accepted by the schema but the stored type is percentage
        update = AppSettings.PenaltyUpdate(late_penalty_rate=250)
        with pytest.raises(ValueError):
            merge_penalty_settings(PenaltySettings(), update)

    def test_merge_keeps_unset_fields(self):
        merged = merge_penalty_settings(PenaltySettings(), AppSettings.PenaltyUpdate(max_late_penalty_days=3))
        assert merged.max_late_penalty_days == 3
        assert merged.damage_penalty_rate == 10


class TestEffect:
    def test_tiers_normalized(self):
        effect = Effect(type=EffectType.TIERED_PRICE, value=[{"min_hours": 4, "rate": 80}], apply_to="unit")
        assert effect.value == [{"min_hours": 4, "rate": 80.0}]

    @pytest.mark.parametrize("kind,value", [
        (EffectType.PERCENT_DISCOUNT, 120),
        (EffectType.FLAT_DISCOUNT, -5),
        (EffectType.SURCHARGE, "ten"),
        (EffectType.TIERED_PRICE, []),
        (EffectType.SET_PRICE, True),
    ])
    def test_invalid_values(self, kind, value):
        with pytest.raises(ValidationError):
            Effect(type=kind, value=value, apply_to="total")
