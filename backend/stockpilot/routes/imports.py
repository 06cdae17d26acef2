# Overview: Spreadsheet upload routes for customer and order imports.

"""
Import Routes

Supports CSV (UTF-8, optional BOM) and Excel (.xlsx) uploads. The first
row is the header row; only the first sheet of a workbook is read.
"""

import csv
import io
import zipfile

from flask import Blueprint, current_app, g, jsonify, request
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..decorators import require_auth
from ..services import import_service

imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")

EXCEL_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


class UploadParseError(ValueError):
    """The uploaded file could not be read as a table."""


def read_rows(file) -> list[dict]:
    """Parse an uploaded CSV or Excel file into header-keyed dicts, skipping blank rows."""
    filename = file.filename or ""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext == "csv":
        try:
            text = file.stream.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise UploadParseError(f"{filename} is not UTF-8 encoded")
        reader = csv.DictReader(io.StringIO(text))
        rows = [row for row in reader]
    elif ext in EXCEL_EXTENSIONS:
        try:
            wb = load_workbook(file.stream, read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError):
            raise UploadParseError(f"{filename} is not a valid Excel workbook")
        sheet = wb.worksheets[0]
        data = list(sheet.values)
        wb.close()
        if not data:
            rows = []
        else:
            headers = [str(h).strip() if h is not None else "" for h in data[0]]
            rows = [
                {headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]}
                for row in data[1:]
            ]
    else:
        raise UploadParseError("Unsupported file format. Upload a .csv or .xlsx file.")

    return [row for row in rows if any(v not in (None, "") for v in row.values())]


def _flag(name: str, default: bool) -> bool:
    raw = request.form.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@imports_bp.post("/customers")
@require_auth
def import_customers_route():
    """
    Multipart: file (csv/xlsx), optional skip_duplicates (default true),
    update_existing (default false).
    """
    if "file" not in request.files:
        return jsonify({"success": False, "error": "file is required"}), 400

    try:
        rows = read_rows(request.files["file"])
    except UploadParseError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    if not rows:
        return jsonify({"success": False, "error": "The file contains no data rows"}), 400

    result = import_service.import_customers(
        rows,
        skip_duplicates=_flag("skip_duplicates", True),
        update_existing=_flag("update_existing", False),
    )
    current_app.logger.info("Customer import by %s: %s rows", g.current_user.email, len(rows))
    return jsonify(result), 200


@imports_bp.post("/orders")
@require_auth
def import_orders_route():
    """Multipart: orders_file and items_file (csv/xlsx), joined on the order number."""
    orders_file = request.files.get("orders_file")
    items_file = request.files.get("items_file")
    if not orders_file or not items_file:
        return jsonify({"success": False, "error": "orders_file and items_file are required"}), 400

    try:
        order_rows = read_rows(orders_file)
        item_rows = read_rows(items_file)
    except UploadParseError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    if not order_rows:
        return jsonify({"success": False, "error": "The orders file contains no data rows"}), 400

    result = import_service.import_orders(order_rows, item_rows, actor=g.current_user)
    return jsonify(result), 200
