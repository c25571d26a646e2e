"""Command-line interface for the loan tracker.

This module uses the ``click`` library to implement a multi-command
interface. Users can compute an EMI, print full amortization schedules, see
how much their part payments save, and keep a list of loan projects in a
database. Schedules can be exported to JSON/CSV and projects to the
versioned JSON export format.
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import click

from .data_models import AmortizationRow, LoanRecord, PartPayment
from .engine import (
    calculate_emi,
    calculate_savings,
    count_paid_emis,
    generate_amortization,
    is_non_amortizing,
)
from .errors import ImportFormatError, InvalidRecordError
from .formatter import (
    format_currency_detailed,
    format_month_year,
    print_projects,
    print_savings,
    print_schedule,
    row_to_dict,
    savings_to_dict,
)
from .storage import create_storage_from_env
from .store import ProjectStore, init_store
from .transfer import dump_export, load_export, validate_record
from .utils import decimal_from_str, parse_amount, parse_year_month

DATABASE_URL_ENV = "LOAN_TRACKER_DATABASE_URL"


def _amount(value: str) -> Decimal:
    try:
        return parse_amount(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def _year_month(value: str) -> Tuple[int, int]:
    try:
        return parse_year_month(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_part_payment_strings(values: Tuple[str, ...]) -> List[PartPayment]:
    part_payments: List[PartPayment] = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 2:
            raise click.BadParameter(f"Part payment must be in YYYY-MM:AMOUNT format; got {item}")
        ym, amount_str = parts
        month, year = _year_month(ym)
        part_payments.append(PartPayment(month=month, year=year, amount=_amount(amount_str)))
    return part_payments


def build_record_from_options(
    principal: str,
    rate: str,
    tenure: int,
    start_date: Optional[str],
    emi: Optional[str],
    part_payment: Tuple[str, ...] = (),
    name: str = "",
) -> LoanRecord:
    if start_date:
        start_month, start_year = _year_month(start_date)
    else:
        today = date.today()
        start_month, start_year = today.month, today.year
    try:
        annual_rate = decimal_from_str(rate)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    record = LoanRecord(
        name=name,
        principal=_amount(principal),
        annual_rate=annual_rate,
        tenure_years=tenure,
        start_month=start_month,
        start_year=start_year,
        emi_override=_amount(emi) if emi else None,
        part_payments=parse_part_payment_strings(part_payment) if part_payment else [],
    )
    try:
        validate_record(record)
    except InvalidRecordError as exc:
        raise click.BadParameter(str(exc))
    return record


def export_to_json(path: Path, rows: List[AmortizationRow], record: LoanRecord) -> None:
    """Export a schedule and its savings summary to a JSON file."""
    data = {
        "savings": savings_to_dict(calculate_savings(record)),
        "schedule": [row_to_dict(row) for row in rows],
    }
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, rows: List[AmortizationRow]) -> None:
    """Export a schedule to a CSV file."""
    header = [
        "Month_Index",
        "Month",
        "Year",
        "Opening_Balance",
        "EMI",
        "Interest",
        "Principal",
        "Part_Payment",
        "Closing_Balance",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in rows:
            writer.writerow(
                [
                    row.month_index,
                    row.month,
                    row.year,
                    float(row.opening_balance),
                    float(row.emi),
                    float(row.interest),
                    float(row.principal),
                    float(row.part_payment),
                    float(row.closing_balance),
                ]
            )


def loan_options(func: Callable) -> Callable:
    """Attach the options describing a loan to a command."""
    decorators = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount (e.g. 2500000, 25l, 1.2cr)"),
        click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (percent)"),
        click.option("--tenure", "-t", "tenure", required=True, type=int, help="Loan tenure in years"),
        click.option("--start-date", "-s", "start_date", help="First EMI month (YYYY-MM); defaults to this month"),
        click.option("--emi", "emi", help="EMI actually paid, if different from the computed one"),
        click.option("--part-payment", "part_payment", multiple=True, help="Part payment in YYYY-MM:AMOUNT format"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _warn_if_non_amortizing(record: LoanRecord, rows: List[AmortizationRow]) -> None:
    if is_non_amortizing(record, rows):
        click.echo(
            f"Warning: the EMI does not pay off this loan; schedule stopped after {len(rows)} months.",
            err=True,
        )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Track loans, EMIs and the savings from part payments."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--principal", "-p", "principal", required=True, help="Loan amount")
@click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (percent)")
@click.option("--tenure", "-t", "tenure", required=True, type=int, help="Loan tenure in years")
def emi(principal: str, rate: str, tenure: int) -> None:
    """Print the monthly installment for a loan."""
    if tenure <= 0:
        raise click.BadParameter("Tenure must be a positive number of years")
    try:
        annual_rate = decimal_from_str(rate)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    click.echo(format_currency_detailed(calculate_emi(_amount(principal), annual_rate, tenure)))


@cli.command()
@loan_options
@click.option("--no-part-payments", "no_part_payments", is_flag=True, help="Ignore part payments")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(
    principal: str,
    rate: str,
    tenure: int,
    start_date: Optional[str],
    emi: Optional[str],
    part_payment: Tuple[str, ...],
    no_part_payments: bool,
    output: Optional[str],
) -> None:
    """Compute and print the full amortization schedule."""
    record = build_record_from_options(principal, rate, tenure, start_date, emi, part_payment)
    rows = generate_amortization(record, include_part_payments=not no_part_payments)
    _warn_if_non_amortizing(record, rows)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, rows, record)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, rows)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Schedule exported to {path}")
    else:
        print_schedule(rows)


@cli.command()
@loan_options
def savings(
    principal: str,
    rate: str,
    tenure: int,
    start_date: Optional[str],
    emi: Optional[str],
    part_payment: Tuple[str, ...],
) -> None:
    """Show how much the part payments save in interest and tenure."""
    record = build_record_from_options(principal, rate, tenure, start_date, emi, part_payment)
    print_savings(calculate_savings(record))


@cli.group()
@click.option(
    "--database-url",
    "database_url",
    envvar=DATABASE_URL_ENV,
    help=f"SQLAlchemy URL of the project database (env: {DATABASE_URL_ENV})",
)
@click.pass_context
def project(ctx: click.Context, database_url: Optional[str]) -> None:
    """Manage saved loan projects."""
    ctx.obj = init_store(create_storage_from_env(database_url))


def _require_project(store: ProjectStore, project_id: str) -> LoanRecord:
    record = store.get_project(project_id)
    if record is None:
        raise click.ClickException(f"No project with id {project_id}")
    return record


@project.command("add")
@click.option("--name", "-n", "name", required=True, help="Project name")
@loan_options
@click.pass_obj
def project_add(
    store: ProjectStore,
    name: str,
    principal: str,
    rate: str,
    tenure: int,
    start_date: Optional[str],
    emi: Optional[str],
    part_payment: Tuple[str, ...],
) -> None:
    """Save a new loan project."""
    record = build_record_from_options(principal, rate, tenure, start_date, emi, part_payment, name=name)
    project_id = store.add_project(
        name=record.name,
        principal=record.principal,
        annual_rate=record.annual_rate,
        tenure_years=record.tenure_years,
        start_month=record.start_month,
        start_year=record.start_year,
        emi_override=record.emi_override,
    )
    for pp in record.part_payments:
        store.add_part_payment(project_id, month=pp.month, year=pp.year, amount=pp.amount)
    click.echo(project_id)


@project.command("list")
@click.pass_obj
def project_list(store: ProjectStore) -> None:
    """List saved projects."""
    projects = store.list_projects()
    emis = {
        p.id: p.emi_override if p.emi_override is not None else calculate_emi(p.principal, p.annual_rate, p.tenure_years)
        for p in projects
    }
    paid = {p.id: count_paid_emis(p) for p in projects}
    print_projects(projects, emis, paid)


@project.command("show")
@click.argument("project_id")
@click.option("--schedule", "show_schedule", is_flag=True, help="Also print the amortization schedule")
@click.pass_obj
def project_show(store: ProjectStore, project_id: str, show_schedule: bool) -> None:
    """Show a project's part payments and savings."""
    record = _require_project(store, project_id)
    click.echo(f"{record.name} ({record.id})")
    if record.part_payments:
        click.echo("Part payments:")
        for pp in record.part_payments:
            click.echo(f"  {pp.id}  {format_month_year(pp.month, pp.year)}  {format_currency_detailed(pp.amount)}")
    print_savings(calculate_savings(record))
    if show_schedule:
        rows = generate_amortization(record)
        _warn_if_non_amortizing(record, rows)
        print_schedule(rows)


@project.command("delete")
@click.argument("project_id")
@click.pass_obj
def project_delete(store: ProjectStore, project_id: str) -> None:
    """Delete a project."""
    _require_project(store, project_id)
    store.delete_project(project_id)
    click.echo(f"Deleted {project_id}")


@project.command("pay")
@click.argument("project_id")
@click.option("--date", "-d", "paid_on", required=True, help="Month of the payment (YYYY-MM)")
@click.option("--amount", "-a", "amount", required=True, help="Amount paid")
@click.pass_obj
def project_pay(store: ProjectStore, project_id: str, paid_on: str, amount: str) -> None:
    """Record a part payment against a project."""
    _require_project(store, project_id)
    month, year = _year_month(paid_on)
    try:
        pp_id = store.add_part_payment(project_id, month=month, year=year, amount=_amount(amount))
    except InvalidRecordError as exc:
        raise click.BadParameter(str(exc))
    click.echo(pp_id)


@project.command("unpay")
@click.argument("project_id")
@click.argument("part_payment_id")
@click.pass_obj
def project_unpay(store: ProjectStore, project_id: str, part_payment_id: str) -> None:
    """Remove a recorded part payment."""
    _require_project(store, project_id)
    if store.find_part_payment(project_id, part_payment_id) is None:
        raise click.ClickException(f"No part payment with id {part_payment_id}")
    store.remove_part_payment(project_id, part_payment_id)
    click.echo(f"Removed {part_payment_id}")


@project.command("progress")
@click.argument("project_id")
@click.option("--as-of", "as_of", help="Count EMIs due up to this month (YYYY-MM); defaults to today")
@click.pass_obj
def project_progress(store: ProjectStore, project_id: str, as_of: Optional[str]) -> None:
    """Show how many EMIs have fallen due."""
    record = _require_project(store, project_id)
    today = None
    if as_of:
        month, year = _year_month(as_of)
        today = date(year, month, 1)
    paid = count_paid_emis(record, today)
    click.echo(f"{paid}/{record.scheduled_months} EMIs paid")


@project.command("export")
@click.option("--output", "-o", "output", required=True, type=str, help="Output file path (.json)")
@click.option("--id", "project_ids", multiple=True, help="Only export these project ids")
@click.pass_obj
def project_export(store: ProjectStore, output: str, project_ids: Tuple[str, ...]) -> None:
    """Export projects to a JSON file."""
    path = Path(output)
    if path.suffix.lower() != ".json":
        raise click.BadParameter("Export must use .json extension")
    data = store.export_projects(list(project_ids) if project_ids else None)
    dump_export(path, data)
    click.echo(f"Exported {len(data['projects'])} projects to {path}")


@project.command("import")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def project_import(store: ProjectStore, input_file: Path) -> None:
    """Import projects from a JSON export file."""
    try:
        count = store.import_projects(load_export(input_file))
    except ImportFormatError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Imported {count} projects")


if __name__ == "__main__":
    cli()
