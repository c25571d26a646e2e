"""Conversion of loan projects to and from JSON-compatible dictionaries.

Two shapes are produced here. The *stored* shape is what the project store
writes to its storage slot and includes identifiers and the creation
timestamp. The *export* shape drops those and is wrapped in a versioned
envelope::

    {"version": 1, "projects": [{"name": ..., "principal": ..., ...}]}

Amounts are written as floats, the way schedules are exported elsewhere, and
parsed back into ``Decimal``.
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .data_models import LoanRecord, PartPayment
from .errors import ImportFormatError, InvalidRecordError
from .utils import decimal_from_str, int_from_value

EXPORT_VERSION = 1

_OPTIONAL_FIELDS = (
    ("emiOverride", "emi_override"),
    ("preEmiInterest", "pre_emi_interest"),
    ("preEmiMonth", "pre_emi_month"),
    ("preEmiYear", "pre_emi_year"),
)


def _money(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else decimal_from_str(str(value))


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int_from_value(value)


def validate_part_payment(month: int, year: int, amount: Decimal) -> None:
    """Raise ``InvalidRecordError`` unless the part payment fields are usable."""
    if not 1 <= month <= 12:
        raise InvalidRecordError(f"Part payment month must be 1-12; got {month}")
    if amount <= 0:
        raise InvalidRecordError(f"Part payment amount must be positive; got {amount}")


def validate_record(record: LoanRecord) -> None:
    """Check the loan terms before a record is stored.

    The engine assumes these hold and does not re-check them.
    """
    if record.principal <= 0:
        raise InvalidRecordError(f"Principal must be positive; got {record.principal}")
    if record.annual_rate < 0:
        raise InvalidRecordError(f"Interest rate cannot be negative; got {record.annual_rate}")
    if record.tenure_years <= 0:
        raise InvalidRecordError(f"Tenure must be a positive number of years; got {record.tenure_years}")
    if not 1 <= record.start_month <= 12:
        raise InvalidRecordError(f"Start month must be 1-12; got {record.start_month}")
    # Zero is a real value here, not "no override"
    if record.emi_override is not None and record.emi_override <= 0:
        raise InvalidRecordError(f"EMI override must be positive; got {record.emi_override}")
    if record.pre_emi_month is not None and not 1 <= record.pre_emi_month <= 12:
        raise InvalidRecordError(f"Pre-EMI month must be 1-12; got {record.pre_emi_month}")
    for pp in record.part_payments:
        validate_part_payment(pp.month, pp.year, pp.amount)


def part_payment_to_dict(pp: PartPayment, include_ids: bool = True) -> Dict[str, Any]:
    data: Dict[str, Any] = {"month": pp.month, "year": pp.year, "amount": float(pp.amount)}
    if include_ids:
        data = {"id": pp.id, **data}
    return data


def record_to_dict(record: LoanRecord, include_ids: bool = True) -> Dict[str, Any]:
    """Serialize a record; ``include_ids=False`` gives the export shape."""
    data: Dict[str, Any] = {}
    if include_ids:
        data["id"] = record.id
    data.update(
        {
            "name": record.name,
            "principal": float(record.principal),
            "annualRate": float(record.annual_rate),
            "tenureYears": record.tenure_years,
            "startMonth": record.start_month,
            "startYear": record.start_year,
        }
    )
    for key, attr in _OPTIONAL_FIELDS:
        value = getattr(record, attr)
        if value is not None:
            data[key] = _money(value) if isinstance(value, Decimal) else value
    data["partPayments"] = [part_payment_to_dict(pp, include_ids) for pp in record.part_payments]
    if include_ids:
        data["createdAt"] = record.created_at
    return data


def record_from_dict(data: Dict[str, Any]) -> LoanRecord:
    """Build a ``LoanRecord`` from either the stored or the export shape.

    Raises
    ------
    InvalidRecordError
        If a required field is missing or a value cannot be converted.
    """
    try:
        part_payments = [
            PartPayment(
                month=int_from_value(pp["month"]),
                year=int_from_value(pp["year"]),
                amount=decimal_from_str(str(pp["amount"])),
                id=str(pp.get("id", "")),
            )
            for pp in data.get("partPayments") or []
        ]
        return LoanRecord(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            principal=decimal_from_str(str(data["principal"])),
            annual_rate=decimal_from_str(str(data["annualRate"])),
            tenure_years=int_from_value(data["tenureYears"]),
            start_month=int_from_value(data["startMonth"]),
            start_year=int_from_value(data["startYear"]),
            emi_override=_optional_decimal(data.get("emiOverride")),
            pre_emi_interest=_optional_decimal(data.get("preEmiInterest")),
            pre_emi_month=_optional_int(data.get("preEmiMonth")),
            pre_emi_year=_optional_int(data.get("preEmiYear")),
            part_payments=part_payments,
            created_at=int(data.get("createdAt", 0)),
        )
    except KeyError as exc:
        raise InvalidRecordError(f"Missing field {exc.args[0]!r}") from exc
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidRecordError(str(exc)) from exc


def build_export(records: Iterable[LoanRecord]) -> Dict[str, Any]:
    """Wrap records in the versioned export envelope."""
    return {
        "version": EXPORT_VERSION,
        "projects": [record_to_dict(record, include_ids=False) for record in records],
    }


def parse_import(data: Any) -> List[LoanRecord]:
    """Validate an export envelope and return the records it holds.

    Every entry is parsed and validated before anything is returned, so a
    caller adding the records never imports a partial set.

    Raises
    ------
    ImportFormatError
        If the envelope version is wrong, ``projects`` is not a list, or any
        entry is malformed.
    """
    if not isinstance(data, dict) or data.get("version") != EXPORT_VERSION:
        raise ImportFormatError("Invalid import format")
    projects = data.get("projects")
    if not isinstance(projects, list):
        raise ImportFormatError("Invalid import format")

    records: List[LoanRecord] = []
    for position, entry in enumerate(projects):
        if not isinstance(entry, dict):
            raise ImportFormatError(f"Project #{position + 1} is not an object")
        try:
            record = record_from_dict(entry)
            validate_record(record)
        except InvalidRecordError as exc:
            raise ImportFormatError(f"Project #{position + 1}: {exc}") from exc
        records.append(record)
    return records


def dump_export(path: Path, data: Dict[str, Any]) -> None:
    """Write an export envelope to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def load_export(path: Path) -> Any:
    """Read an export envelope from a JSON file."""
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ImportFormatError(f"{path} is not valid JSON: {exc}") from exc
