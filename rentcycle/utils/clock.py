from datetime import date


class SystemClock:
    """Today's date from the host clock"""

    def today(self) -> date:
        return date.today()


class FixedClock:
    """Frozen clock for jobs replayed on a given day and for tests"""

    def __init__(self, day: date):
        self.day = day

    def today(self) -> date:
        return self.day


system_clock = SystemClock()
