"""
Typed Exception Hierarchy for the Capital Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure a caller may want to react to has its own class, a
machine-readable ``code`` class attribute, an ``ErrorKind`` and structured
attributes (entity type, entity id, attempted transition).  Callers catch by
type, never by parsing message text.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CapitalKernelError (base)
    |
    +-- NotFoundError                  kind NOT_FOUND
    +-- InvalidStateError              kind INVALID_STATE
    +-- OverCommittedError             kind OVER_COMMITTED
    +-- WrongOwnerError                kind WRONG_OWNER
    +-- AlreadyMatchedError            kind ALREADY_MATCHED
    |
    +-- ConflictError                  kind CONFLICT
    |   +-- DuplicateOgmError
    |   +-- DuplicateDividendPeriodError
    |   +-- DuplicateShareClassError
    |
    +-- ValidationError                kind VALIDATION
    |   +-- InvalidOgmFormatError
    |   +-- InvalidOgmChecksumError
    |   +-- OgmSequenceOutOfRangeError
    |   +-- BankRowParseError          (row-scoped, swallowed by bank import)
    |   +-- EmptyStatementError
    |   +-- QuantityOutOfRangeError
    |   +-- MissingRejectionReasonError
    |   +-- InvalidRateError
    |   +-- NothingToExportError
    |
    +-- ConcurrencyError               kind CONCURRENCY
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityViolationError     kind IMMUTABILITY

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|------------------------------------------------
NOT_FOUND                   | Entity missing, inactive, or in another coop
INVALID_STATE               | Transition attempted from a disallowed status
OVER_COMMITTED              | Quantity exceeds what is available on a share
WRONG_OWNER                 | Share does not belong to the given shareholder
ALREADY_MATCHED             | Bank row already resolved
DUPLICATE_OGM               | OGM code already issued
DUPLICATE_DIVIDEND_PERIOD   | Second dividend period for the same year
DUPLICATE_SHARE_CLASS       | Share class code already used in the coop
INVALID_OGM_FORMAT          | Not 12 digits / bad prefix
INVALID_OGM_CHECKSUM        | mod-97 check digits do not match
OGM_SEQUENCE_OUT_OF_RANGE   | Sequence outside 1..9,999,999
BANK_ROW_PARSE_ERROR        | Malformed bank CSV row (date or amount)
EMPTY_STATEMENT             | Bank CSV without data rows
QUANTITY_OUT_OF_RANGE       | Quantity < 1 or outside share class bounds
MISSING_REJECTION_REASON    | Reject without a reason
INVALID_RATE                | Dividend / tax rate outside [0, 1]
NOTHING_TO_EXPORT           | Dividend export of a period without payouts
OPTIMISTIC_LOCK_CONFLICT    | Compare-and-set lost against a concurrent writer
IMMUTABILITY_VIOLATION      | Write to a snapshot or terminal record

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        ledger.initiate_sale(...)
    except OverCommittedError as e:
        return {"error": e.code, "available": str(e.available)}

``capital_kernel.services.unit_of_work.UnitOfWork.run`` maps every
``CapitalKernelError`` to a ``LedgerOutcome`` carrying the original
exception; infrastructure errors are never mapped and always propagate.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Coarse error category used for user-facing mapping."""

    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    OVER_COMMITTED = "over_committed"
    WRONG_OWNER = "wrong_owner"
    ALREADY_MATCHED = "already_matched"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    CONCURRENCY = "concurrency"
    IMMUTABILITY = "immutability"


class CapitalKernelError(Exception):
    """
    Base exception for all capital kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    identification and a `kind` for coarse mapping.
    """

    code: str = "CAPITAL_KERNEL_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION


class NotFoundError(CapitalKernelError):
    """Referenced entity is missing, inactive, or belongs to another coop."""

    code: str = "NOT_FOUND"
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: str, reason: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        message = f"{entity_type} not found: {entity_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidStateError(CapitalKernelError):
    """Operation attempted from a disallowed state."""

    code: str = "INVALID_STATE"
    kind = ErrorKind.INVALID_STATE

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        attempted: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity_type} {entity_id} "
            f"in status {current_status}"
        )


class OverCommittedError(CapitalKernelError):
    """Requested quantity exceeds what is available net of in-flight commitments."""

    code: str = "OVER_COMMITTED"
    kind = ErrorKind.OVER_COMMITTED

    def __init__(self, share_id: str, requested: int, available: int):
        self.share_id = share_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Share {share_id}: requested {requested}, only {available} available"
        )


class WrongOwnerError(CapitalKernelError):
    """Share is not owned by the shareholder acting on it."""

    code: str = "WRONG_OWNER"
    kind = ErrorKind.WRONG_OWNER

    def __init__(self, share_id: str, shareholder_id: str):
        self.share_id = share_id
        self.shareholder_id = shareholder_id
        super().__init__(
            f"Share {share_id} does not belong to shareholder {shareholder_id}"
        )


class AlreadyMatchedError(CapitalKernelError):
    """Bank transaction has already been matched to a payment."""

    code: str = "ALREADY_MATCHED"
    kind = ErrorKind.ALREADY_MATCHED

    def __init__(self, bank_transaction_id: str, match_status: str):
        self.bank_transaction_id = bank_transaction_id
        self.match_status = match_status
        super().__init__(
            f"Bank transaction {bank_transaction_id} is already {match_status}"
        )


# Conflict errors


class ConflictError(CapitalKernelError):
    """Base exception for uniqueness conflicts."""

    code: str = "CONFLICT"
    kind = ErrorKind.CONFLICT


class DuplicateOgmError(ConflictError):
    """OGM code has already been issued."""

    code: str = "DUPLICATE_OGM"

    def __init__(self, ogm_code: str):
        self.ogm_code = ogm_code
        super().__init__(f"OGM code already issued: {ogm_code}")


class DuplicateDividendPeriodError(ConflictError):
    """A dividend period already exists for this coop and year."""

    code: str = "DUPLICATE_DIVIDEND_PERIOD"

    def __init__(self, coop_id: str, year: int):
        self.coop_id = coop_id
        self.year = year
        super().__init__(f"Dividend period for {year} already exists")


class DuplicateShareClassError(ConflictError):
    """Share class code already used within the coop."""

    code: str = "DUPLICATE_SHARE_CLASS"

    def __init__(self, coop_id: str, share_class_code: str):
        self.coop_id = coop_id
        self.share_class_code = share_class_code
        super().__init__(f"Share class code already exists: {share_class_code}")


# Validation errors


class ValidationError(CapitalKernelError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"
    kind = ErrorKind.VALIDATION


class InvalidOgmFormatError(ValidationError):
    """OGM code does not have the required structure."""

    code: str = "INVALID_OGM_FORMAT"

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid OGM format {value!r}: {reason}")


class InvalidOgmChecksumError(ValidationError):
    """OGM check digits do not match the mod-97 checksum of the base."""

    code: str = "INVALID_OGM_CHECKSUM"

    def __init__(self, value: str, expected: int, actual: int):
        self.value = value
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Invalid OGM checksum {value!r}: expected {expected:02d}, got {actual:02d}"
        )


class OgmSequenceOutOfRangeError(ValidationError):
    """OGM sequence outside the 7-digit range."""

    code: str = "OGM_SEQUENCE_OUT_OF_RANGE"

    def __init__(self, sequence: int):
        self.sequence = sequence
        super().__init__(f"OGM sequence {sequence} outside 1..9999999")


class BankRowParseError(ValidationError):
    """A bank statement row could not be parsed."""

    code: str = "BANK_ROW_PARSE_ERROR"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Bank row {line_number}: {reason}")


class EmptyStatementError(ValidationError):
    """Bank statement has no data rows."""

    code: str = "EMPTY_STATEMENT"

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"CSV file {file_name!r} is empty or has no data rows")


class QuantityOutOfRangeError(ValidationError):
    """Share quantity outside the allowed bounds."""

    code: str = "QUANTITY_OUT_OF_RANGE"

    def __init__(
        self,
        quantity: int,
        minimum: int | None = None,
        maximum: int | None = None,
    ):
        self.quantity = quantity
        self.minimum = minimum
        self.maximum = maximum
        bounds = f"min={minimum}, max={maximum}"
        super().__init__(f"Quantity {quantity} outside allowed range ({bounds})")


class MissingRejectionReasonError(ValidationError):
    """Rejecting a transaction requires a reason."""

    code: str = "MISSING_REJECTION_REASON"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Rejection of transaction {transaction_id} requires a reason")


class InvalidRateError(ValidationError):
    """Rate must be a fraction between 0 and 1."""

    code: str = "INVALID_RATE"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be between 0 and 1, got {value}")


class NothingToExportError(ValidationError):
    """Dividend period has no payouts."""

    code: str = "NOTHING_TO_EXPORT"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Dividend period {period_id} has no payouts to export")


# Concurrency errors


class ConcurrencyError(CapitalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    kind = ErrorKind.CONCURRENCY


class OptimisticLockError(ConcurrencyError):
    """Compare-and-set lost against a concurrent writer."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id} "
            f"(expected version {expected_version})"
        )


class ImmutabilityViolationError(CapitalKernelError):
    """Attempt to modify an immutable value or a terminal record."""

    code: str = "IMMUTABILITY_VIOLATION"
    kind = ErrorKind.IMMUTABILITY

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
