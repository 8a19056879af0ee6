"""Unit tests for application settings."""

import pytest
from pydantic import ValidationError

from service_dispatch.infrastructure.config import Settings


class TestSettings:
    """Test cases for Settings."""

    def test_defaults(self):
        """Test default dispatch settings."""
        settings = Settings(_env_file=None)

        assert settings.booking_number_prefix == "NMS"
        assert settings.booking_number_width == 6
        assert settings.dispatch_rating_weight == 10.0
        assert settings.dispatch_distance_weight == 1.0
        assert settings.travel_speed_kmh == 25.0
        assert settings.notification_webhook_url is None

    def test_retry_policies(self):
        """Test retry settings build the expected policies."""
        settings = Settings(_env_file=None)

        urgent = settings.urgent_retry_policy()
        normal = settings.normal_retry_policy()

        assert [urgent.delay_for(i) for i in range(1, 7)] == [5.0, 10.0, 20.0, 40.0, 60.0, 60.0]
        assert urgent.escalate_on_exhaustion is True
        assert normal.max_attempts == 3
        assert normal.delay_for(2) == 300.0
        assert normal.escalate_on_exhaustion is False

    def test_environment_overrides(self, monkeypatch):
        """Test settings are read from the environment."""
        monkeypatch.setenv("BOOKING_NUMBER_PREFIX", "SRV")
        monkeypatch.setenv("URGENT_RETRY_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("NOTIFICATION_WEBHOOK_URL", "https://hooks.example.com/bookings")

        settings = Settings(_env_file=None)

        assert settings.booking_number_prefix == "SRV"
        assert settings.urgent_retry_policy().max_attempts == 3
        assert settings.notification_webhook_url == "https://hooks.example.com/bookings"

    def test_invalid_values(self):
        """Test invalid settings are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, travel_speed_kmh=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, booking_number_width=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, urgent_retry_base_seconds=90.0, urgent_retry_max_seconds=60.0)
