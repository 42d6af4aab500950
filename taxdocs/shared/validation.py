"""Validation report models attached to every extracted document."""

from typing import Literal

from pydantic import BaseModel, Field, computed_field

Severity = Literal["high", "medium"]


class ValidationIssue(BaseModel):
    """A single arithmetic or identifier discrepancy.

    Attributes:
        type: Machine-readable code, e.g. IVA_CALCULATION_ERROR
        message: Human-readable description with computed and declared values
        severity: 'high' for blocking errors, 'medium' for advisory warnings
    """

    type: str
    message: str
    severity: Severity


class ValidationReport(BaseModel):
    """Outcome of cross-checking declared figures against expected ones.

    Only errors affect validity. Totals are always recomputed from the
    document and never copied from a declared total field.
    """

    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    totals: dict[str, float] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        """True iff no errors were recorded."""
        return not self.errors

    def add_error(self, issue_type: str, message: str) -> None:
        """Record a blocking discrepancy."""
        self.errors.append(ValidationIssue(type=issue_type, message=message, severity="high"))

    def add_warning(self, issue_type: str, message: str) -> None:
        """Record an advisory discrepancy."""
        self.warnings.append(ValidationIssue(type=issue_type, message=message, severity="medium"))
