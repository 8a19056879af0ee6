"""Unit tests for booking number generation."""

import asyncio
import pytest
from unittest.mock import AsyncMock

from service_dispatch.application.services.sequence_generator import BookingNumber, SequenceGenerator
from service_dispatch.domain.errors import SequenceUnavailable
from service_dispatch.infrastructure.repositories.memory_repositories import InMemoryBookingSequenceRepository


class TestSequenceGenerator:
    """Test cases for SequenceGenerator."""

    def test_format(self):
        """Test counter values are zero-padded behind the prefix."""
        generator = SequenceGenerator(InMemoryBookingSequenceRepository())

        assert generator.format(1) == "NMS000001"
        assert generator.format(123456) == "NMS123456"
        assert generator.format(1234567) == "NMS1234567"

    @pytest.mark.asyncio
    async def test_first_numbers(self):
        """Test numbers follow the counter."""
        generator = SequenceGenerator(InMemoryBookingSequenceRepository())

        assert await generator.next() == "NMS000001"
        assert await generator.next() == "NMS000002"

    @pytest.mark.asyncio
    async def test_numbers_continue_after_existing_count(self):
        """Test the counter picks up where it left off."""
        generator = SequenceGenerator(InMemoryBookingSequenceRepository(start=41))

        number = await generator.next_number()

        assert number == BookingNumber(value="NMS000042", fallback=False)
        assert str(number) == "NMS000042"

    @pytest.mark.asyncio
    async def test_concurrent_requests_get_distinct_numbers(self):
        """Test concurrent callers never share a number."""
        generator = SequenceGenerator(InMemoryBookingSequenceRepository())

        numbers = await asyncio.gather(*(generator.next() for _ in range(50)))

        assert len(set(numbers)) == 50
        assert sorted(numbers) == [f"NMS{i:06d}" for i in range(1, 51)]

    @pytest.mark.asyncio
    async def test_custom_prefix_and_width(self):
        """Test prefix, width and sequence name are configurable."""
        counter = AsyncMock()
        counter.increment.return_value = 7
        generator = SequenceGenerator(counter, prefix="SRV", width=4, sequence_name="service")

        assert await generator.next() == "SRV0007"
        counter.increment.assert_called_once_with("service")

    @pytest.mark.asyncio
    async def test_fallback_when_counter_unavailable(self):
        """Test a timestamp number is returned and flagged."""
        counter = InMemoryBookingSequenceRepository()
        counter.available = False
        generator = SequenceGenerator(counter, clock_millis=lambda: 1727776800123)

        number = await generator.next_number()

        assert number.fallback is True
        assert number.value == "NMS800123"

    @pytest.mark.asyncio
    async def test_fallbacks_in_same_millisecond_differ(self):
        """Test repeated fallbacks never reuse a millisecond."""
        counter = InMemoryBookingSequenceRepository()
        counter.available = False
        generator = SequenceGenerator(counter, clock_millis=lambda: 1727776800123)

        numbers = [await generator.next() for _ in range(3)]

        assert numbers == ["NMS800123", "NMS800124", "NMS800125"]

    @pytest.mark.asyncio
    async def test_fallback_logs_warning(self, caplog):
        """Test the degraded path is logged."""
        counter = AsyncMock()
        counter.increment.side_effect = SequenceUnavailable("connection refused")
        generator = SequenceGenerator(counter, clock_millis=lambda: 1000000)

        with caplog.at_level("WARNING"):
            assert await generator.next() == "NMS000000"

        assert "timestamp fallback" in caplog.text

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        """Test only sequence outages trigger the fallback."""
        counter = AsyncMock()
        counter.increment.side_effect = RuntimeError("bug")
        generator = SequenceGenerator(counter)

        with pytest.raises(RuntimeError):
            await generator.next()
