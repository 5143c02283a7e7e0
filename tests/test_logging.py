"""
Tests for log redaction.
"""
import pytest

from merchant_onboarding.monitoring.logging import REDACTED, redact_sensitive_fields


class TestRedaction:
    @pytest.mark.unit
    def test_top_level_and_nested_values_are_redacted(self) -> None:
        event = {
            "event": "stripe_account_update_sent",
            "stripe_account_id": "acct_1",
            "id_number": "123456789",
            "params": {
                "individual": {"first_name": "Ada", "dob": {"day": 1, "month": 2, "year": 1990}},
                "external_account": {"account_number": "000123456789", "country": "US"},
            },
            "persons": [{"ssn_last_4": "6789"}],
        }

        redacted = redact_sensitive_fields(None, "info", event)

        assert redacted["id_number"] == REDACTED
        assert redacted["stripe_account_id"] == "acct_1"
        assert redacted["params"]["individual"] == {"first_name": "Ada", "dob": REDACTED}
        assert redacted["params"]["external_account"]["account_number"] == REDACTED
        assert redacted["params"]["external_account"]["country"] == "US"
        assert redacted["persons"] == [{"ssn_last_4": REDACTED}]
