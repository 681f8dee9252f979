"""
Domain exceptions for the field recalculation engine.

Every condition here is a distinct, catchable failure. Diagnostics are not
exceptions (they are data on the return), and a write skipped because a field
is overridden is not a failure at all.
"""

from typing import List, Optional


class FieldEngineError(Exception):
    """Base class for all engine failures."""
    pass


class ReturnNotFound(FieldEngineError):
    """Raised when a return id has no stored return."""

    def __init__(self, return_id: str):
        self.return_id = return_id
        super().__init__(f"Return not found: {return_id}")


class FieldNotFound(FieldEngineError):
    """Raised when a composite key has no stored field."""

    def __init__(self, return_id: str, form_id: str, field_id: str):
        self.return_id = return_id
        self.form_id = form_id
        self.field_id = field_id
        super().__init__(f"Field not found: {form_id}.{field_id} on return {return_id}")


class DuplicateField(FieldEngineError):
    """Raised when a return already has a field with the same canonical key."""

    def __init__(self, return_id: str, key: str):
        self.return_id = return_id
        self.key = key
        super().__init__(f"Field already exists: {key} on return {return_id}")


class ReturnLocked(FieldEngineError):
    """Raised when a mutation targets a locked return."""

    def __init__(self, return_id: str):
        self.return_id = return_id
        super().__init__(f"Return is locked: {return_id}")


class InvalidFieldIdentifier(FieldEngineError):
    """Raised when canonicalization leaves an empty form or field part."""

    def __init__(self, raw: str, form_id: str = "", field_id: str = ""):
        self.raw = raw
        self.form_id = form_id
        self.field_id = field_id
        super().__init__(
            f"Invalid field identifier {raw!r} (form={form_id!r}, field={field_id!r})"
        )


class UnknownFilingStatus(FieldEngineError):
    """Raised when the standard deduction table has no row for a filing status."""

    def __init__(self, filing_status: str, tax_year: Optional[int] = None):
        self.filing_status = filing_status
        self.tax_year = tax_year
        year = f" for tax year {tax_year}" if tax_year else ""
        super().__init__(f"Unknown filing status {filing_status!r}{year}")


class UnsupportedTaxYear(FieldEngineError):
    """Raised when no constants are configured for a tax year."""

    def __init__(self, tax_year: int):
        self.tax_year = tax_year
        super().__init__(f"No tax constants configured for tax year {tax_year}")


class DependencyCycleError(FieldEngineError):
    """Raised when a dependency graph is built with a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__("Dependency cycle detected: " + " -> ".join(cycle))
