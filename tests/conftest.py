"""
Shared fixtures for the comparables engine tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class ManualCall:
    """Handle returned by ManualScheduler; fires only when the test says so."""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler fake: callbacks run on fire_pending(), never on a timer."""

    def __init__(self):
        self.calls = []

    def schedule(self, delay, callback):
        call = ManualCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self):
        return [c for c in self.calls if not c.cancelled and not c.fired]

    def fire_pending(self):
        """Run every pending callback; returns how many ran."""
        due = self.pending
        for call in due:
            call.fired = True
            call.callback()
        return len(due)


@pytest.fixture
def scheduler():
    return ManualScheduler()
