from datetime import timedelta

from .models import CycleOutcome

RETRY_INTERVAL = timedelta(seconds=30)


class IntervalController:
    """
    Decides how long to sleep before the next cycle.
    A transient failure shortens the wait to RETRY_INTERVAL; a success restores
    the configured interval. Structural failures leave it alone since the
    orchestrator halts on them.
    """

    def __init__(self, configured: timedelta, retry: timedelta = RETRY_INTERVAL):
        self.configured = configured
        self.retry = retry
        self.current = configured

    def record(self, outcome: CycleOutcome) -> timedelta:
        if outcome.is_success:
            self.current = self.configured
        elif outcome.is_transient:
            self.current = self.retry
        return self.current
