"""Parser for FatturaPA electronic invoices.

Reads the XML into nested field maps (element local names as keys, attributes
merged into their element's map), then builds an InvoiceDocument and checks
the VAT arithmetic of every DatiRiepilogo entry.

Namespace handling follows the usual FatturaPA practice: only local names are
compared, so the root may be ``p:FatturaElettronica``, ``ns2:...`` or
unprefixed.
"""

import logging
from pathlib import Path
from typing import Any

from lxml import etree

from taxdocs.invoice.schema import (
    DocumentData,
    InvoiceBody,
    InvoiceDocument,
    InvoiceHeader,
    InvoiceLine,
    Issuer,
    Recipient,
    TransmissionData,
    VatSummaryEntry,
)
from taxdocs.shared import metrics
from taxdocs.shared.config import Settings, get_settings
from taxdocs.shared.errors import StructuralParseError
from taxdocs.shared.identifiers import (
    ITALIAN_VAT_NUMBER,
    fiscal_code_checksum_ok,
    is_personal_fiscal_code,
    vat_number_checksum_ok,
)
from taxdocs.shared.tax_rules import expected_vat, to_float, vat_mismatch
from taxdocs.shared.validation import ValidationReport

logger = logging.getLogger(__name__)

ROOT_ELEMENT = "FatturaElettronica"
TEXT_KEY = "_text"

FieldMap = dict[str, Any]


def _localname(tag: str) -> str:
    """Strip '{namespace}' or 'prefix:' from a tag or attribute name."""
    if "}" in tag:
        return tag.split("}", 1)[1]
    if ":" in tag:
        return tag.split(":", 1)[1]
    return tag


def _element_to_value(element: etree._Element) -> Any:
    """Convert an element to a string (leaf) or a field map.

    Repeated child names collect into a list; a single child stays scalar.
    Callers coerce repeatable groups with _as_list.
    """
    children = [child for child in element if isinstance(child.tag, str)]
    text = (element.text or "").strip()
    if not children and not element.attrib:
        return text

    fields: FieldMap = {_localname(name): value for name, value in element.attrib.items()}
    if text and not children:
        fields[TEXT_KEY] = text
    for child in children:
        key = _localname(child.tag)
        value = _element_to_value(child)
        if key not in fields:
            fields[key] = value
        elif isinstance(fields[key], list):
            fields[key].append(value)
        else:
            fields[key] = [fields[key], value]
    return fields


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _text(value: Any) -> str | None:
    """Leaf text of a field, None when absent or empty."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get(TEXT_KEY)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _group(fields: Any, *path: str) -> FieldMap | None:
    """Walk a path of nested groups, returning None if any step is missing."""
    current = fields
    for key in path:
        if isinstance(current, list):
            current = current[0] if current else None
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    if isinstance(current, list):
        current = current[0] if current else None
    return current if isinstance(current, dict) else None


def _require(fields: Any, *path: str) -> FieldMap:
    group = _group(fields, *path)
    if group is None:
        raise StructuralParseError(f"Missing mandatory section: {'/'.join(path)}")
    return group


def _tax_identity(registry: FieldMap) -> tuple[str | None, str | None, str | None]:
    """Return (country, vat number, fiscal code) from a DatiAnagrafici group."""
    vat_id = _group(registry, "IdFiscaleIVA")
    country = _text(vat_id.get("IdPaese")) if vat_id else None
    vat_number = _text(vat_id.get("IdCodice")) if vat_id else None
    return country, vat_number, _text(registry.get("CodiceFiscale"))


def resolve_display_name(
    denomination: str | None,
    first_name: str | None,
    last_name: str | None,
    fiscal_code: str | None,
) -> str | None:
    """Display name for an invoice party.

    Natural persons (personal fiscal code, or no company denomination) are
    shown as 'Nome Cognome'; companies by their denomination.
    """
    person_name = " ".join(part for part in (first_name, last_name) if part) or None
    if person_name and (is_personal_fiscal_code(fiscal_code) or not denomination):
        return person_name
    return denomination or person_name


class InvoiceParser:
    """Structured invoice parser with VAT arithmetic validation.

    Holds no per-document state; one instance can parse any number of
    invoices, concurrently if needed.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize parser.

        Args:
            settings: Application settings (VAT tolerance)
        """
        self.settings = settings or get_settings()

    def parse(self, source: str | Path | bytes) -> InvoiceDocument:
        """Parse and validate a FatturaPA document.

        Args:
            source: Path to an XML file, or the raw XML bytes

        Returns:
            InvoiceDocument with header, body and validation report

        Raises:
            StructuralParseError: Malformed XML or missing mandatory sections
        """
        try:
            document = self._parse(source)
        except StructuralParseError:
            metrics.documents_extracted_total.labels(document_type="invoice", status="failed").inc()
            raise
        metrics.documents_extracted_total.labels(document_type="invoice", status="success").inc()
        return document

    def _parse(self, source: str | Path | bytes) -> InvoiceDocument:
        root = self._load_root(source)
        if _localname(root.tag) != ROOT_ELEMENT:
            raise StructuralParseError(
                f"Unexpected root element '{_localname(root.tag)}', expected {ROOT_ELEMENT}"
            )

        fields = _element_to_value(root)
        if not isinstance(fields, dict):
            raise StructuralParseError("Empty FatturaElettronica document")

        header_fields = _require(fields, "FatturaElettronicaHeader")
        bodies = _as_list(fields.get("FatturaElettronicaBody"))
        if not bodies or not isinstance(bodies[0], dict):
            raise StructuralParseError("Missing mandatory section: FatturaElettronicaBody")
        if len(bodies) > 1:
            logger.warning(
                f"Invoice batch with {len(bodies)} bodies, only the first one is extracted"
            )

        header = self.extract_header(header_fields)
        body = self.extract_body(bodies[0])
        validation = self.validate(body)
        self._check_identifiers(header, validation)

        logger.info(
            f"Parsed invoice {body.document.number or '?'}: "
            f"{len(body.lines)} lines, {len(body.vat_summary)} VAT entries, "
            f"valid={validation.is_valid}"
        )
        return InvoiceDocument(header=header, body=body, validation=validation)

    def _load_root(self, source: str | Path | bytes) -> etree._Element:
        if isinstance(source, bytes):
            data = source
        else:
            path = Path(source)
            try:
                data = path.read_bytes()
            except OSError as e:
                raise StructuralParseError(f"Cannot read invoice file {path}: {e}") from e

        parser = etree.XMLParser(recover=False, resolve_entities=False, no_network=True)
        try:
            return etree.fromstring(data, parser=parser)
        except etree.XMLSyntaxError as e:
            raise StructuralParseError(f"Malformed XML: {e}") from e

    def extract_header(self, header: FieldMap) -> InvoiceHeader:
        """Build the header from FatturaElettronicaHeader fields.

        Raises:
            StructuralParseError: Issuer or recipient tax identity missing
        """
        issuer_registry = _require(header, "CedentePrestatore", "DatiAnagrafici")
        recipient_registry = _require(header, "CessionarioCommittente", "DatiAnagrafici")

        vat_country, vat_number, fiscal_code = _tax_identity(issuer_registry)
        if not vat_number and not fiscal_code:
            raise StructuralParseError("Issuer tax identity (IdFiscaleIVA/CodiceFiscale) missing")
        issuer_names = _group(issuer_registry, "Anagrafica") or {}
        issuer = Issuer(
            denomination=_text(issuer_names.get("Denominazione"))
            or resolve_display_name(
                None,
                _text(issuer_names.get("Nome")),
                _text(issuer_names.get("Cognome")),
                fiscal_code,
            ),
            vat_country=vat_country,
            vat_number=vat_number,
            fiscal_code=fiscal_code,
            tax_regime=_text(issuer_registry.get("RegimeFiscale")),
        )

        _, recipient_vat, recipient_cf = _tax_identity(recipient_registry)
        if not recipient_vat and not recipient_cf:
            raise StructuralParseError(
                "Recipient tax identity (IdFiscaleIVA/CodiceFiscale) missing"
            )
        names = _group(recipient_registry, "Anagrafica") or {}
        denomination = _text(names.get("Denominazione"))
        first_name = _text(names.get("Nome"))
        last_name = _text(names.get("Cognome"))
        recipient = Recipient(
            denomination=denomination,
            first_name=first_name,
            last_name=last_name,
            fiscal_code=recipient_cf,
            vat_number=recipient_vat,
            display_name=resolve_display_name(denomination, first_name, last_name, recipient_cf),
        )

        transmission_fields = _group(header, "DatiTrasmissione") or {}
        sender = _group(transmission_fields, "IdTrasmittente") or {}
        sender_id = "".join(
            part for part in (_text(sender.get("IdPaese")), _text(sender.get("IdCodice"))) if part
        )
        transmission = TransmissionData(
            sender_id=sender_id or None,
            format=_text(transmission_fields.get("FormatoTrasmissione")),
            progressive=_text(transmission_fields.get("ProgressivoInvio")),
            recipient_code=_text(transmission_fields.get("CodiceDestinatario")),
        )
        return InvoiceHeader(issuer=issuer, recipient=recipient, transmission=transmission)

    def extract_body(self, body: FieldMap) -> InvoiceBody:
        """Build the body from one FatturaElettronicaBody.

        Raises:
            StructuralParseError: General data, lines or VAT summary missing
        """
        general = _require(body, "DatiGenerali", "DatiGeneraliDocumento")
        goods = _require(body, "DatiBeniServizi")

        raw_lines = [item for item in _as_list(goods.get("DettaglioLinee")) if isinstance(item, dict)]
        raw_summary = [item for item in _as_list(goods.get("DatiRiepilogo")) if isinstance(item, dict)]
        if not raw_lines:
            raise StructuralParseError("Missing mandatory section: DatiBeniServizi/DettaglioLinee")
        if not raw_summary:
            raise StructuralParseError("Missing mandatory section: DatiBeniServizi/DatiRiepilogo")

        document = DocumentData(
            number=_text(general.get("Numero")),
            date=_text(general.get("Data")),
            type_code=_text(general.get("TipoDocumento")),
            currency=_text(general.get("Divisa")) or "EUR",
        )
        lines = [
            InvoiceLine(
                line_number=int(to_float(_text(line.get("NumeroLinea")))) or None,
                description=_text(line.get("Descrizione")),
                quantity=to_float(_text(line.get("Quantita")), default=1.0),
                unit_price=to_float(_text(line.get("PrezzoUnitario"))),
                total_price=to_float(_text(line.get("PrezzoTotale"))),
                vat_rate=to_float(_text(line.get("AliquotaIVA"))),
                nature=_text(line.get("Natura")),
            )
            for line in raw_lines
        ]
        vat_summary = [
            VatSummaryEntry(
                rate=to_float(_text(entry.get("AliquotaIVA"))),
                taxable_amount=to_float(_text(entry.get("ImponibileImporto"))),
                tax_amount=to_float(_text(entry.get("Imposta"))),
                nature=_text(entry.get("Natura")),
                regulatory_reference=_text(entry.get("RiferimentoNormativo")),
            )
            for entry in raw_summary
        ]
        return InvoiceBody(document=document, lines=lines, vat_summary=vat_summary)

    def validate(self, body: InvoiceBody) -> ValidationReport:
        """Check VAT arithmetic per summary entry and recompute totals.

        The declared document total is never read: totals come from the
        summary entries only.
        """
        report = ValidationReport()
        for index, entry in enumerate(body.vat_summary, start=1):
            if vat_mismatch(
                entry.taxable_amount, entry.rate, entry.tax_amount, self.settings.vat_tolerance
            ):
                computed = expected_vat(entry.taxable_amount, entry.rate)
                report.add_error(
                    "IVA_CALCULATION_ERROR",
                    f"VAT summary {index}: computed VAT {computed:.2f}, "
                    f"declared {entry.tax_amount:.2f}",
                )

        taxable = sum(entry.taxable_amount for entry in body.vat_summary)
        tax = sum(entry.tax_amount for entry in body.vat_summary)
        report.totals = {"imponibile": taxable, "iva": tax, "totale": taxable + tax}
        return report

    def _check_identifiers(self, header: InvoiceHeader, report: ValidationReport) -> None:
        """Advisory checksum checks on Italian identifiers."""
        issuer = header.issuer
        if (
            issuer.vat_country in (None, "IT")
            and issuer.vat_number
            and ITALIAN_VAT_NUMBER.match(issuer.vat_number)
            and not vat_number_checksum_ok(issuer.vat_number)
        ):
            report.add_warning(
                "PARTITA_IVA_WARNING",
                "Issuer VAT number fails the check digit",
            )

        fiscal_code = header.recipient.fiscal_code
        if is_personal_fiscal_code(fiscal_code) and not fiscal_code_checksum_ok(fiscal_code or ""):
            report.add_warning(
                "CODICE_FISCALE_WARNING",
                "Recipient fiscal code fails the control character",
            )


def parse_structured_invoice(
    source: str | Path | bytes, settings: Settings | None = None
) -> InvoiceDocument:
    """Parse a FatturaPA file or buffer into an InvoiceDocument.

    Raises:
        StructuralParseError: see InvoiceParser.parse
    """
    return InvoiceParser(settings).parse(source)
