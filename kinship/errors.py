"""Typed failures raised by the store and lifecycle layers."""


class KinshipError(Exception):
    """Base class for every failure the registry reports to its callers."""


class StoreUnavailable(KinshipError):
    """The database could not be opened or a transaction could not be started."""


class NotFound(KinshipError, LookupError):
    def __init__(self, person_id: str):
        super().__init__(f"Person {person_id} not found")
        self.person_id = person_id


class InvariantViolation(KinshipError, ValueError):
    """A requested change would leave the family graph inconsistent."""


class IdCollision(KinshipError):
    """Two allocations produced the same identifier. Safe to retry."""

    retryable = True

    def __init__(self, person_id: str):
        super().__init__(f"Identifier {person_id} is already taken")
        self.person_id = person_id
