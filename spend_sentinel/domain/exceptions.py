"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class TransactionFeedError(DomainException):
    """Transaction feed returned an error or is unavailable"""

    pass


class InvalidTransactionDataError(TransactionFeedError):
    """Feed responded but a transaction or account record is malformed"""

    pass


class StorageError(DomainException):
    """Persisted state could not be read, parsed or written"""

    pass


class BudgetValidationError(DomainException):
    """Budget create/update request carries invalid values"""

    pass

