"""Shared fixtures for unit tests."""

import os
from collections.abc import Callable, Generator

import pytest

from taxdocs.shared.config import Settings

FPR_NAMESPACE = "http://ivaservizi.agenziaentrate.gov.it/docs/xsd/fatture/v1.2"

COMPANY_RECIPIENT = """
        <DatiAnagrafici>
          <IdFiscaleIVA><IdPaese>IT</IdPaese><IdCodice>01234567897</IdCodice></IdFiscaleIVA>
          <Anagrafica><Denominazione>Cliente SRL</Denominazione></Anagrafica>
        </DatiAnagrafici>"""

PERSON_RECIPIENT = """
        <DatiAnagrafici>
          <CodiceFiscale>RSSMRA80A01H501U</CodiceFiscale>
          <Anagrafica><Nome>Mario</Nome><Cognome>Rossi</Cognome></Anagrafica>
        </DatiAnagrafici>"""


def _line_xml(number: int, description: str, quantity: float | None, price: float, rate: float) -> str:
    quantity_xml = f"<Quantita>{quantity:.2f}</Quantita>" if quantity is not None else ""
    total = price * (quantity if quantity is not None else 1)
    return f"""
        <DettaglioLinee>
          <NumeroLinea>{number}</NumeroLinea>
          <Descrizione>{description}</Descrizione>
          {quantity_xml}
          <PrezzoUnitario>{price:.2f}</PrezzoUnitario>
          <PrezzoTotale>{total:.2f}</PrezzoTotale>
          <AliquotaIVA>{rate:.2f}</AliquotaIVA>
        </DettaglioLinee>"""


def _summary_xml(taxable: float, rate: float, tax: float) -> str:
    return f"""
        <DatiRiepilogo>
          <AliquotaIVA>{rate:.2f}</AliquotaIVA>
          <ImponibileImporto>{taxable:.2f}</ImponibileImporto>
          <Imposta>{tax:.2f}</Imposta>
          <EsigibilitaIVA>I</EsigibilitaIVA>
        </DatiRiepilogo>"""


def build_invoice_xml(
    summary: list[tuple[float, float, float]] | None = None,
    lines: list[tuple[str, float | None, float, float]] | None = None,
    recipient: str = COMPANY_RECIPIENT,
    issuer_vat: str = "01234567897",
    prefix: str | None = "p",
    bodies: int = 1,
    omit: str | None = None,
) -> bytes:
    """FatturaPA document as bytes.

    Args:
        summary: (taxable, rate, tax) per DatiRiepilogo entry
        lines: (description, quantity or None, unit price, rate) per line
        recipient: DatiAnagrafici block of the CessionarioCommittente
        issuer_vat: Issuer IdCodice
        prefix: Namespace prefix of the root, None for an unqualified root
        bodies: Number of FatturaElettronicaBody elements
        omit: Name of a section to leave out (for structural error tests)
    """
    summary = summary if summary is not None else [(1000.00, 22, 220.00)]
    lines = lines if lines is not None else [("Consulenza fiscale", 1, 1000.00, 22)]

    lines_xml = "".join(
        _line_xml(i, desc, qty, price, rate) for i, (desc, qty, price, rate) in enumerate(lines, 1)
    )
    summary_xml = "".join(_summary_xml(*entry) for entry in summary)
    goods_xml = "" if omit == "DatiBeniServizi" else f"<DatiBeniServizi>{lines_xml}{summary_xml}</DatiBeniServizi>"
    body_xml = f"""
  <FatturaElettronicaBody>
    <DatiGenerali>
      <DatiGeneraliDocumento>
        <TipoDocumento>TD01</TipoDocumento>
        <Divisa>EUR</Divisa>
        <Data>2025-03-15</Data>
        <Numero>FT-2025/042</Numero>
        <ImportoTotaleDocumento>99999.99</ImportoTotaleDocumento>
      </DatiGeneraliDocumento>
    </DatiGenerali>
    {goods_xml}
  </FatturaElettronicaBody>"""
    recipient_xml = (
        "" if omit == "CessionarioCommittente"
        else f"<CessionarioCommittente>{recipient}</CessionarioCommittente>"
    )

    if prefix:
        open_tag = f'<{prefix}:FatturaElettronica xmlns:{prefix}="{FPR_NAMESPACE}" versione="FPR12">'
        close_tag = f"</{prefix}:FatturaElettronica>"
    else:
        open_tag = '<FatturaElettronica versione="FPR12">'
        close_tag = "</FatturaElettronica>"

    document = f"""<?xml version="1.0" encoding="UTF-8"?>
{open_tag}
  <FatturaElettronicaHeader>
    <DatiTrasmissione>
      <IdTrasmittente><IdPaese>IT</IdPaese><IdCodice>01234567897</IdCodice></IdTrasmittente>
      <ProgressivoInvio>00042</ProgressivoInvio>
      <FormatoTrasmissione>FPR12</FormatoTrasmissione>
      <CodiceDestinatario>0000000</CodiceDestinatario>
    </DatiTrasmissione>
    <CedentePrestatore>
      <DatiAnagrafici>
        <IdFiscaleIVA><IdPaese>IT</IdPaese><IdCodice>{issuer_vat}</IdCodice></IdFiscaleIVA>
        <Anagrafica><Denominazione>Fornitore SPA</Denominazione></Anagrafica>
        <RegimeFiscale>RF01</RegimeFiscale>
      </DatiAnagrafici>
    </CedentePrestatore>
    {recipient_xml}
  </FatturaElettronicaHeader>
  {body_xml * bodies}
{close_tag}
"""
    return document.encode("utf-8")


@pytest.fixture
def make_invoice_xml() -> Callable[..., bytes]:
    """Builder for FatturaPA test documents."""
    return build_invoice_xml


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before and after test."""
    original_env = dict(os.environ)
    for var in list(os.environ):
        if var.upper().startswith("APP_") or var.upper() in (
            "GROQ_API_KEY",
            "HUGGINGFACE_API_KEY",
            "TESSERACT_CMD",
        ):
            del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def settings(clean_env: None) -> Settings:
    """Default settings with no provider credentials."""
    return Settings(_env_file=None)
