"""Project store for tracked loans.

``init_store`` loads the saved project list from a storage slot once and
returns a ``ProjectStore`` handle. Every mutation goes through the handle and
writes the full list back to storage as JSON.
"""

from __future__ import annotations

import json
import logging
import time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol
from uuid import uuid4

from .data_models import LoanRecord, PartPayment
from .errors import InvalidRecordError
from .transfer import (
    build_export,
    parse_import,
    record_from_dict,
    record_to_dict,
    validate_part_payment,
    validate_record,
)

STORAGE_KEY = "loan-calculator-projects"

logger = logging.getLogger(__name__)

# Fields callers may change with update_project
_UPDATABLE_FIELDS = {
    "name",
    "principal",
    "annual_rate",
    "tenure_years",
    "start_month",
    "start_year",
    "emi_override",
    "pre_emi_interest",
    "pre_emi_month",
    "pre_emi_year",
}


class Storage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


def generate_id() -> str:
    return str(uuid4())


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProjectStore:
    """In-memory project list mirrored to a storage slot."""

    def __init__(self, storage: Storage, projects: List[LoanRecord]) -> None:
        self._storage = storage
        self._projects = projects

    def _save(self) -> None:
        payload = [record_to_dict(p) for p in self._projects]
        self._storage.set(STORAGE_KEY, json.dumps(payload))

    def list_projects(self) -> List[LoanRecord]:
        return list(self._projects)

    def get_project(self, project_id: str) -> Optional[LoanRecord]:
        for project in self._projects:
            if project.id == project_id:
                return project
        return None

    def add_project(
        self,
        *,
        name: str,
        principal: Decimal,
        annual_rate: Decimal,
        tenure_years: int,
        start_month: int,
        start_year: int,
        emi_override: Optional[Decimal] = None,
        pre_emi_interest: Optional[Decimal] = None,
        pre_emi_month: Optional[int] = None,
        pre_emi_year: Optional[int] = None,
    ) -> str:
        """Create a project with no part payments and return its id."""
        project = LoanRecord(
            id=generate_id(),
            name=name,
            principal=principal,
            annual_rate=annual_rate,
            tenure_years=tenure_years,
            start_month=start_month,
            start_year=start_year,
            emi_override=emi_override,
            pre_emi_interest=pre_emi_interest,
            pre_emi_month=pre_emi_month,
            pre_emi_year=pre_emi_year,
            part_payments=[],
            created_at=_now_ms(),
        )
        validate_record(project)
        self._projects.append(project)
        self._save()
        logger.debug("Added project %s (%s)", project.id, name)
        return project.id

    def update_project(self, project_id: str, **changes: Any) -> None:
        """Change loan fields of a project. Unknown ids are ignored.

        Passing ``emi_override=None`` clears the override.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        project = self.get_project(project_id)
        if project is None:
            return
        snapshot = {name: getattr(project, name) for name in changes}
        for name, value in changes.items():
            setattr(project, name, value)
        try:
            validate_record(project)
        except Exception:
            for name, value in snapshot.items():
                setattr(project, name, value)
            raise
        self._save()

    def delete_project(self, project_id: str) -> None:
        project = self.get_project(project_id)
        if project is None:
            return
        self._projects.remove(project)
        self._save()
        logger.debug("Deleted project %s", project_id)

    def add_part_payment(self, project_id: str, *, month: int, year: int, amount: Decimal) -> Optional[str]:
        """Record a part payment. Returns its id, or None for an unknown project."""
        project = self.get_project(project_id)
        if project is None:
            return None
        validate_part_payment(month, year, amount)
        pp = PartPayment(id=generate_id(), month=month, year=year, amount=amount)
        project.part_payments.append(pp)
        self._save()
        return pp.id

    def find_part_payment(self, project_id: str, pp_id: str) -> Optional[PartPayment]:
        """Return a project's part payment, or None if either id is unknown."""
        project = self.get_project(project_id)
        if project is None:
            return None
        for pp in project.part_payments:
            if pp.id == pp_id:
                return pp
        return None

    def update_part_payment(self, project_id: str, pp_id: str, *, month: int, year: int, amount: Decimal) -> None:
        pp = self.find_part_payment(project_id, pp_id)
        if pp is None:
            return
        validate_part_payment(month, year, amount)
        pp.month = month
        pp.year = year
        pp.amount = amount
        self._save()

    def remove_part_payment(self, project_id: str, pp_id: str) -> None:
        pp = self.find_part_payment(project_id, pp_id)
        if pp is None:
            return
        self.get_project(project_id).part_payments.remove(pp)
        self._save()

    def export_projects(self, project_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Return the export envelope for all projects, or only ``project_ids``."""
        if project_ids is None:
            selected = self._projects
        else:
            wanted = set(project_ids)
            selected = [p for p in self._projects if p.id in wanted]
        return build_export(selected)

    def import_projects(self, data: Any) -> int:
        """Add every project in an export envelope and return how many were added.

        Raises ``ImportFormatError`` without adding anything when the
        envelope or any entry is malformed.
        """
        records = parse_import(data)
        for record in records:
            record.id = generate_id()
            record.created_at = _now_ms()
            for pp in record.part_payments:
                pp.id = generate_id()
            self._projects.append(record)
        if records:
            self._save()
        logger.debug("Imported %d projects", len(records))
        return len(records)


def _load_projects(storage: Storage) -> List[LoanRecord]:
    raw = storage.get(STORAGE_KEY)
    if not raw:
        return []
    try:
        payload = json.loads(raw)
        if not isinstance(payload, list):
            raise ValueError("stored projects are not a list")
    except ValueError as exc:
        logger.warning("Ignoring unreadable project data in slot %r: %s", STORAGE_KEY, exc)
        return []

    projects: List[LoanRecord] = []
    for position, item in enumerate(payload):
        try:
            projects.append(record_from_dict(item))
        except InvalidRecordError as exc:
            # Dropped from memory only; the next save rewrites the slot without it
            logger.warning("Skipping unreadable stored project #%d: %s", position + 1, exc)
    return projects


def init_store(storage: Storage) -> ProjectStore:
    """Load saved projects from ``storage`` and return a store handle."""
    return ProjectStore(storage, _load_projects(storage))
