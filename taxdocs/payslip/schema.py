"""Payslip (busta paga) data models."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from taxdocs.shared.validation import ValidationReport


class PayslipIdentity(BaseModel):
    """Employee identity block."""

    name: str | None = None
    fiscal_code: str | None = Field(None, description="16-character Codice Fiscale")
    employee_id: str | None = Field(None, description="Matricola")


class Earnings(BaseModel):
    """Monthly earnings, each defaulting to 0 when not found."""

    base_salary: float = Field(0.0, ge=0, description="Stipendio / Retribuzione")
    allowance: float = Field(0.0, ge=0, description="Superminimo")
    overtime: float = Field(0.0, ge=0, description="Straordinari")

    @property
    def gross_pay(self) -> float:
        """Basis of every payroll arithmetic check."""
        return self.base_salary + self.allowance + self.overtime


class Contributions(BaseModel):
    social_security: float = Field(0.0, ge=0, description="INPS employee share")
    accident_insurance: float = Field(0.0, ge=0, description="INAIL")


class Taxes(BaseModel):
    income_tax: float = Field(0.0, ge=0, description="IRPEF withheld")
    regional_surtax: float = Field(0.0, ge=0, description="Addizionali regionale/comunale")


class PayslipDocument(BaseModel):
    """Structured payslip, also the payslip input of the analysis engine."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["payslip"] = "payslip"
    identity: PayslipIdentity = Field(default_factory=PayslipIdentity)
    earnings: Earnings = Field(default_factory=Earnings)
    contributions: Contributions = Field(default_factory=Contributions)
    taxes: Taxes = Field(default_factory=Taxes)
    net_pay: float = Field(0.0, ge=0)
    period: str | None = Field(None, description="Pay period label, e.g. '03/2025' or 'Marzo 2025'")


class PayslipExtraction(BaseModel):
    """Full output of the scanned payslip pipeline."""

    raw_text: str
    parsed_data: PayslipDocument
    validation: ValidationReport
