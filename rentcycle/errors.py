"""
Error taxonomy for the rent cycle engine.

Everything derives from ValueError so callers that only catch ValueError
(the convention across the services) keep working.
"""


class RentCycleError(ValueError):
    """Base class for all rent cycle errors"""


class InvalidDateError(RentCycleError):
    """Malformed or out-of-range date, due day or lease duration"""


class NegativeAmountError(RentCycleError):
    """A monetary input was below zero"""


class InsufficientAdvanceError(RentCycleError):
    """Advance draw exceeds the tenancy's advance balance"""

    def __init__(self, requested, available):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Advance draw {requested} exceeds available advance balance {available}"
        )


class NoPeriodsSelectedError(RentCycleError):
    """A payment was requested for zero billing periods"""


class StaleTenancyStateError(RentCycleError):
    """The stored tenancy changed after the snapshot used for the calculation was read"""

    def __init__(self, tenancy_id, expected_next_due_date):
        self.tenancy_id = tenancy_id
        self.expected_next_due_date = expected_next_due_date
        super().__init__(
            f"Tenancy {tenancy_id} changed since it was read "
            f"(expected next due date {expected_next_due_date})"
        )


class ArrearsLimitExceededError(RentCycleError):
    """Too many overdue periods, the stored due date is almost certainly corrupt"""


class TenancyEndedError(RentCycleError):
    """Rent cycle fields of an ended tenancy cannot change"""


class TenancyNotFoundError(RentCycleError):
    pass


class PropertyOccupiedError(RentCycleError):
    pass
