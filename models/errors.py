"""
models/errors.py
----------------
Exceptions raised by the invoice services.
Handlers catch InvoiceError and show its message to the operator.
"""


class InvoiceError(Exception):
    """Base class for every domain error."""


class ValidationError(InvoiceError):
    """Operator input is incomplete or malformed."""


class NotFound(InvoiceError):
    """The referenced invoice does not exist."""

    def __init__(self, invoice_ref):
        super().__init__(f"Invoice {invoice_ref} not found")
        self.invoice_ref = invoice_ref


class MissingRecipient(InvoiceError):
    """The invoice has no phone number on file."""

    def __init__(self, invoice_number: int):
        super().__init__(f"Invoice #{invoice_number} has no client phone number")
        self.invoice_number = invoice_number


class DocumentNotFound(InvoiceError):
    """No rendered PDF exists for the invoice number."""

    def __init__(self, invoice_number: int):
        super().__init__(f"PDF for invoice #{invoice_number} not found")
        self.invoice_number = invoice_number


class DeliveryFailure(InvoiceError):
    """The delivery channel refused or failed to send the document."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DuplicationFailure(InvoiceError):
    """Creating the follow-on invoice after payment failed."""
