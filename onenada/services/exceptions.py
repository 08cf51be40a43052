"""Domain-specific exceptions."""


class ServiceError(Exception):
    pass


class TransientError(ServiceError):
    """Network or backend failure; safe to retry."""


class InvalidInput(ServiceError):
    pass


class ReservationError(InvalidInput):
    pass


class DataIntegrityError(ServiceError):
    """The remote pool disagrees with its own invariants (gap or duplicate row)."""


class AuthError(ServiceError):
    """Identity or entitlement call failed."""
