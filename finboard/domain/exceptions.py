"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidInputError(DomainException):
    """Numeric or date arguments are malformed and were rejected before computation"""

    pass


class UnexpectedComputationError(DomainException):
    """Arithmetic produced overflow or a non-finite value from pathological input"""

    pass


class NotFoundError(DomainException):
    """Entity does not exist or is not visible to the caller"""

    pass


class ConflictError(DomainException):
    """Operation conflicts with the current state of stored data"""

    pass


class IdentityProviderError(DomainException):
    """Identity provider returned an error or is unavailable"""

    pass
