# core/exceptions.py

"""
Domain exceptions for ledger, billing and checkout.

Ledger errors halt posting for the affected student; billing errors are
recoverable and rejected at validation (or reported per student in batch
runs); a settlement failure leaves the student ACTIVE.
"""


class HostelError(Exception):
    """Base class for every hostel domain error."""

    code = 'hostel_error'


# =============================================================================
# LEDGER ERRORS
# =============================================================================

class LedgerError(HostelError):
    code = 'ledger_error'


class InconsistentLedgerError(LedgerError):
    """Raised when a recorded balance_after disagrees with the recomputed total."""

    code = 'inconsistent_ledger'

    def __init__(self, entry, expected, recorded):
        self.entry = entry
        self.expected = expected
        self.recorded = recorded
        super().__init__(
            f"Ledger entry {getattr(entry, 'pk', entry)} records balance {recorded}, "
            f"expected {expected}"
        )


class ImmutableEntryError(LedgerError):
    code = 'immutable_entry'


class BackdatedEntryError(LedgerError):
    code = 'backdated_entry'


class DuplicateReversalError(LedgerError):
    code = 'duplicate_reversal'


class LedgerTimeoutError(LedgerError):
    """The database did not grant a lock or finish a statement in time."""

    code = 'ledger_timeout'


# =============================================================================
# BILLING ERRORS
# =============================================================================

class BillingError(HostelError):
    code = 'billing_error'


class DuplicateInvoiceError(BillingError):
    code = 'duplicate_invoice'

    def __init__(self, student, year, month, reference_id=None):
        self.student = student
        self.year = year
        self.month = month
        self.reference_id = reference_id
        super().__init__(
            f"Student {getattr(student, 'pk', student)} already invoiced for "
            f"{year}-{month:02d}" + (f" ({reference_id})" if reference_id else "")
        )


class InvalidAmountError(BillingError):
    code = 'invalid_amount'


class ExpiredDiscountError(BillingError):
    code = 'expired_discount'


class StudentNotBillableError(BillingError):
    code = 'student_not_billable'


# =============================================================================
# CHECKOUT ERRORS
# =============================================================================

class SettlementFailedError(HostelError):
    """Checkout aborted; the student stays ACTIVE."""

    code = 'settlement_failed'
