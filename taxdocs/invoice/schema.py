"""Electronic invoice (FatturaPA) data models.

Field names are English; the FatturaPA element each one comes from is noted
in the description.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from taxdocs.shared.validation import ValidationReport


class Issuer(BaseModel):
    """Seller (CedentePrestatore)."""

    denomination: str | None = Field(None, description="Anagrafica/Denominazione")
    vat_country: str | None = Field(None, description="IdFiscaleIVA/IdPaese")
    vat_number: str | None = Field(None, description="IdFiscaleIVA/IdCodice")
    fiscal_code: str | None = Field(None, description="CodiceFiscale")
    tax_regime: str | None = Field(None, description="RegimeFiscale, e.g. RF01")


class Recipient(BaseModel):
    """Buyer (CessionarioCommittente)."""

    denomination: str | None = Field(None, description="Anagrafica/Denominazione")
    first_name: str | None = Field(None, description="Anagrafica/Nome")
    last_name: str | None = Field(None, description="Anagrafica/Cognome")
    fiscal_code: str | None = Field(None, description="CodiceFiscale")
    vat_number: str | None = Field(None, description="IdFiscaleIVA/IdCodice")
    display_name: str | None = Field(None, description="Resolved name shown to users")


class TransmissionData(BaseModel):
    """DatiTrasmissione."""

    sender_id: str | None = Field(None, description="IdTrasmittente (IdPaese + IdCodice)")
    format: str | None = Field(None, description="FormatoTrasmissione, e.g. FPR12")
    progressive: str | None = Field(None, description="ProgressivoInvio")
    recipient_code: str | None = Field(None, description="CodiceDestinatario (SDI code)")


class InvoiceHeader(BaseModel):
    """FatturaElettronicaHeader."""

    issuer: Issuer
    recipient: Recipient
    transmission: TransmissionData = Field(default_factory=TransmissionData)


class DocumentData(BaseModel):
    """DatiGeneraliDocumento."""

    number: str | None = Field(None, description="Numero")
    date: str | None = Field(None, description="Data (ISO date as written in the XML)")
    type_code: str | None = Field(None, description="TipoDocumento, e.g. TD01")
    currency: str = Field("EUR", description="Divisa")


class InvoiceLine(BaseModel):
    """DettaglioLinee."""

    line_number: int | None = None
    description: str | None = None
    quantity: float = Field(1.0, description="Defaults to 1 when Quantita is absent")
    unit_price: float = 0.0
    total_price: float = 0.0
    vat_rate: float = Field(0.0, description="AliquotaIVA percentage, 0 when absent")
    nature: str | None = Field(None, description="Natura code for exempt lines")


class VatSummaryEntry(BaseModel):
    """DatiRiepilogo: one entry per distinct VAT rate."""

    rate: float = 0.0
    taxable_amount: float = 0.0
    tax_amount: float = 0.0
    nature: str | None = None
    regulatory_reference: str | None = None


class InvoiceBody(BaseModel):
    """FatturaElettronicaBody, also the invoice input of the analysis engine."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["invoice"] = "invoice"
    document: DocumentData = Field(default_factory=DocumentData)
    lines: list[InvoiceLine] = Field(default_factory=list)
    vat_summary: list[VatSummaryEntry] = Field(default_factory=list)


class InvoiceDocument(BaseModel):
    """Parsed invoice plus its validation report."""

    header: InvoiceHeader
    body: InvoiceBody
    validation: ValidationReport
