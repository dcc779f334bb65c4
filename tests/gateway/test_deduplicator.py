"""
MessageDeduplicator Tests

File: tests/gateway/test_deduplicator.py
"""

import threading

import pytest

from mirror_relay.gateway.deduplicator import MessageDeduplicator


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestMessageDeduplicator:
    """Message deduplicator tests"""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def deduplicator(self, clock):
        return MessageDeduplicator(ttl_seconds=2, max_size=100, clock=clock)

    def test_first_message_not_duplicate(self, deduplicator):
        assert deduplicator.is_duplicate("1001", "C1") is False

    def test_replayed_message_is_duplicate(self, deduplicator):
        """A message replayed after a resume is caught"""
        deduplicator.is_duplicate("1001", "C1")
        assert deduplicator.is_duplicate("1001", "C1") is True

    def test_different_channel_not_duplicate(self, deduplicator):
        deduplicator.is_duplicate("1001", "C1")
        assert deduplicator.is_duplicate("1001", "C2") is False

    def test_different_message_not_duplicate(self, deduplicator):
        deduplicator.is_duplicate("1001", "C1")
        assert deduplicator.is_duplicate("1002", "C1") is False

    def test_expired_message_not_duplicate(self, deduplicator, clock):
        deduplicator.is_duplicate("1001", "C1")
        clock.now += 2.5
        assert deduplicator.is_duplicate("1001", "C1") is False

    def test_message_within_ttl_is_duplicate(self, deduplicator, clock):
        deduplicator.is_duplicate("1001", "C1")
        clock.now += 1.5
        assert deduplicator.is_duplicate("1001", "C1") is True

    def test_max_size_limit(self, deduplicator):
        for i in range(150):
            deduplicator.is_duplicate(str(i), "C1")

        assert deduplicator.size <= 100
        # Oldest entries are evicted first
        assert deduplicator.is_duplicate("149", "C1") is True
        assert deduplicator.is_duplicate("0", "C1") is False

    def test_clear(self, deduplicator):
        deduplicator.is_duplicate("1001", "C1")
        deduplicator.is_duplicate("1002", "C1")

        deduplicator.clear()

        assert deduplicator.size == 0
        assert deduplicator.is_duplicate("1001", "C1") is False

    def test_thread_safety(self):
        deduplicator = MessageDeduplicator(ttl_seconds=60, max_size=5000)
        errors = []

        def check_duplicates(thread_id: int):
            try:
                for i in range(100):
                    deduplicator.is_duplicate(f"{thread_id}-{i}", "C1")
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=check_duplicates, args=(i,))
            for i in range(10)
        ]

        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(errors) == 0, f"Thread safety errors: {errors}"
        assert deduplicator.size == 1000

    def test_size_property(self, deduplicator):
        assert deduplicator.size == 0

        deduplicator.is_duplicate("1001", "C1")
        assert deduplicator.size == 1

        deduplicator.is_duplicate("1002", "C2")
        assert deduplicator.size == 2

        # Duplicate should not increase size
        deduplicator.is_duplicate("1001", "C1")
        assert deduplicator.size == 2
