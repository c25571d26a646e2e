import os
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import Flask, current_app, jsonify, request

from loan_tracker.engine import (
    calculate_emi,
    calculate_savings,
    count_paid_emis,
    generate_amortization,
    is_non_amortizing,
)
from loan_tracker.errors import ImportFormatError, InvalidRecordError
from loan_tracker.formatter import row_to_dict, savings_to_dict
from loan_tracker.storage import create_storage_from_env
from loan_tracker.store import ProjectStore, init_store
from loan_tracker.transfer import record_to_dict
from loan_tracker.utils import decimal_from_str, int_from_value

DATABASE_URL_ENV = "LOAN_TRACKER_DATABASE_URL"


class ApiError(Exception):
    pass


def _store() -> ProjectStore:
    return current_app.config["PROJECT_STORE"]


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ApiError("Expected a JSON object")
    return data


def _decimal_field(data: Dict[str, Any], name: str, required: bool = True) -> Optional[Decimal]:
    value = data.get(name)
    if value is None:
        if required:
            raise ApiError(f"Missing field {name!r}")
        return None
    try:
        return decimal_from_str(str(value))
    except ValueError as exc:
        raise ApiError(str(exc)) from exc


def _int_field(data: Dict[str, Any], name: str, required: bool = True) -> Optional[int]:
    value = data.get(name)
    if value is None:
        if required:
            raise ApiError(f"Missing field {name!r}")
        return None
    try:
        return int_from_value(value)
    except (TypeError, ValueError) as exc:
        raise ApiError(f"Field {name!r} must be an integer") from exc


def _project_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Map camelCase request fields onto ``ProjectStore`` keyword arguments."""
    decimals = {
        "principal": ("principal", True),
        "annualRate": ("annual_rate", True),
        "emiOverride": ("emi_override", False),
        "preEmiInterest": ("pre_emi_interest", False),
    }
    ints = {
        "tenureYears": ("tenure_years", True),
        "startMonth": ("start_month", True),
        "startYear": ("start_year", True),
        "preEmiMonth": ("pre_emi_month", False),
        "preEmiYear": ("pre_emi_year", False),
    }
    fields: Dict[str, Any] = {}
    if "name" in data or not partial:
        fields["name"] = str(data.get("name", "")).strip() or "Untitled loan"
    for key, (attr, required) in decimals.items():
        if key in data or not partial:
            fields[attr] = _decimal_field(data, key, required)
    for key, (attr, required) in ints.items():
        if key in data or not partial:
            fields[attr] = _int_field(data, key, required)
    return fields


def _part_payment_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "month": _int_field(data, "month"),
        "year": _int_field(data, "year"),
        "amount": _decimal_field(data, "amount"),
    }


def _project_or_404(project_id: str):
    project = _store().get_project(project_id)
    if project is None:
        return None, (jsonify({"error": f"No project with id {project_id}"}), 404)
    return project, None


def _part_payment_or_404(project_id: str, pp_id: str):
    if _store().find_part_payment(project_id, pp_id) is None:
        return jsonify({"error": f"No part payment with id {pp_id}"}), 404
    return None


def _project_view(project) -> Dict[str, Any]:
    data = record_to_dict(project)
    emi = project.emi_override
    if emi is None:
        emi = calculate_emi(project.principal, project.annual_rate, project.tenure_years)
    data["emi"] = float(emi)
    data["paidEmis"] = count_paid_emis(project, date.today())
    data["totalEmis"] = project.scheduled_months
    return data


def create_app(store: Optional[ProjectStore] = None) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    if store is None:
        store = init_store(create_storage_from_env(os.environ.get(DATABASE_URL_ENV)))
    app.config["PROJECT_STORE"] = store

    @app.errorhandler(ApiError)
    def handle_bad_request(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(InvalidRecordError)
    def handle_invalid_record(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(ImportFormatError)
    def handle_import_format(exc):
        return jsonify({"error": str(exc)}), 400

    @app.post("/api/emi")
    def emi():
        data = _payload()
        tenure_years = _int_field(data, "tenureYears")
        if tenure_years <= 0:
            raise ApiError("Tenure must be a positive number of years")
        value = calculate_emi(_decimal_field(data, "principal"), _decimal_field(data, "annualRate"), tenure_years)
        return jsonify({"emi": float(value)})

    @app.get("/api/projects")
    def list_projects():
        return jsonify([_project_view(p) for p in _store().list_projects()])

    @app.post("/api/projects")
    def add_project():
        project_id = _store().add_project(**_project_fields(_payload()))
        return jsonify(_project_view(_store().get_project(project_id))), 201

    @app.get("/api/projects/<project_id>")
    def get_project(project_id: str):
        project, error = _project_or_404(project_id)
        if error:
            return error
        return jsonify(_project_view(project))

    @app.patch("/api/projects/<project_id>")
    def update_project(project_id: str):
        project, error = _project_or_404(project_id)
        if error:
            return error
        _store().update_project(project_id, **_project_fields(_payload(), partial=True))
        return jsonify(_project_view(project))

    @app.delete("/api/projects/<project_id>")
    def delete_project(project_id: str):
        _, error = _project_or_404(project_id)
        if error:
            return error
        _store().delete_project(project_id)
        return "", 204

    @app.post("/api/projects/<project_id>/part-payments")
    def add_part_payment(project_id: str):
        _, error = _project_or_404(project_id)
        if error:
            return error
        pp_id = _store().add_part_payment(project_id, **_part_payment_fields(_payload()))
        return jsonify({"id": pp_id}), 201

    @app.patch("/api/projects/<project_id>/part-payments/<pp_id>")
    def update_part_payment(project_id: str, pp_id: str):
        project, error = _project_or_404(project_id)
        if error:
            return error
        error = _part_payment_or_404(project_id, pp_id)
        if error:
            return error
        _store().update_part_payment(project_id, pp_id, **_part_payment_fields(_payload()))
        return jsonify(_project_view(project))

    @app.delete("/api/projects/<project_id>/part-payments/<pp_id>")
    def remove_part_payment(project_id: str, pp_id: str):
        _, error = _project_or_404(project_id)
        if error:
            return error
        error = _part_payment_or_404(project_id, pp_id)
        if error:
            return error
        _store().remove_part_payment(project_id, pp_id)
        return "", 204

    @app.get("/api/projects/<project_id>/schedule")
    def schedule(project_id: str):
        project, error = _project_or_404(project_id)
        if error:
            return error
        include = request.args.get("part_payments", "1") != "0"
        rows = generate_amortization(project, include_part_payments=include)
        return jsonify(
            {
                "rows": [row_to_dict(row) for row in rows],
                "converged": not is_non_amortizing(project, rows),
            }
        )

    @app.get("/api/projects/<project_id>/savings")
    def savings(project_id: str):
        project, error = _project_or_404(project_id)
        if error:
            return error
        return jsonify(savings_to_dict(calculate_savings(project)))

    @app.get("/api/export")
    def export_projects():
        ids = request.args.getlist("id")
        return jsonify(_store().export_projects(ids or None))

    @app.post("/api/import")
    def import_projects():
        count = _store().import_projects(request.get_json(silent=True))
        return jsonify({"imported": count})

    return app


if __name__ == "__main__":
    print("Starting Loan Tracker web API...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
