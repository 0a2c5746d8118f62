"""Semicolon-delimited CSV export of property listings."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, tzinfo
from pathlib import Path
from typing import Final

from imobi.logging import get_logger
from imobi.models import FormStatus, Property, ms_to_datetime

logger = get_logger(__name__)

BOM: Final = "\ufeff"
DELIMITER: Final = ";"
_EXPONENT_THRESHOLD: Final = 1e21

CSV_HEADERS: Final = (
    "Código",
    "Endereço",
    "Bairro",
    "Tipo",
    "Valor",
    "Descrição",
    "Observação",
    "Status",
    "Ficha",
    "Captador",
    "Data Atualização",
)


class EmptyExportError(ValueError):
    """Raised when there are no properties to export."""


def quote(text: str) -> str:
    """Wrap in double quotes, doubling any inner quotes."""
    return '"' + text.replace('"', '""') + '"'


def _plain(text: str) -> str:
    if DELIMITER in text or '"' in text or "\n" in text or "\r" in text:
        return quote(text)
    return text


def format_value(value: float) -> str:
    """Decimal-comma amount, without a trailing ``,0`` for whole numbers.

    Whole numbers from 1e21 up keep exponent notation ("1e+21"), as the
    dashboard's number formatting does.
    """
    number = float(value)
    if number.is_integer() and abs(number) < _EXPONENT_THRESHOLD:
        text = str(int(number))
    else:
        text = repr(number)
    return text.replace(".", ",")


def format_date(timestamp_ms: int, tz: tzinfo | None = None) -> str:
    """Day/month/year for a millisecond timestamp, in ``tz`` (local time if None)."""
    moment = ms_to_datetime(timestamp_ms).astimezone(tz)
    return moment.strftime("%d/%m/%Y")


def property_row(prop: Property, tz: tzinfo | None = None) -> list[str]:
    return [
        _plain(prop.code),
        _plain(prop.address),
        _plain(prop.neighborhood),
        prop.property_type.value,
        format_value(prop.value),
        quote(prop.description or ""),
        quote(prop.note or ""),
        prop.status.value,
        (prop.form_status or FormStatus.NO_FORM).value,
        _plain(prop.collected_by),
        format_date(prop.last_updated_at, tz),
    ]


def export_csv(properties: Sequence[Property], tz: tzinfo | None = None) -> str:
    """Render properties as CSV text, BOM included.

    Raises:
        EmptyExportError: If ``properties`` is empty.
    """
    if not properties:
        raise EmptyExportError("Não há dados para exportar.")
    lines = [DELIMITER.join(CSV_HEADERS)]
    lines.extend(DELIMITER.join(property_row(p, tz)) for p in properties)
    return BOM + "\n".join(lines)


def export_filename(day: date | None = None) -> str:
    """Download name for an export made on ``day`` (today by default)."""
    return f"imoveis_{(day or date.today()).isoformat()}.csv"


def write_csv(
    properties: Iterable[Property],
    directory: Path,
    *,
    day: date | None = None,
    tz: tzinfo | None = None,
) -> Path:
    """Write an export file into ``directory`` and return its path."""
    content = export_csv(list(properties), tz)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(day)
    path.write_text(content, encoding="utf-8")
    logger.info("csv_exported", path=str(path), rows=content.count("\n"))
    return path
