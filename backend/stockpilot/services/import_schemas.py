from __future__ import annotations

from datetime import date, datetime
from typing import Any

from stockpilot.time_utils import parse_iso_date
from ..validation import EMAIL_RE

# Cells that mean "no value" in exported sheets
EMPTY_MARKERS = {"", "n/a", "na", "-", "none", "null"}

# Customer sheets come in Vietnamese, Chinese or English
CUSTOMER_HEADER_SYNONYMS = {
    "tên khách hàng": "name",
    "ten khach hang": "name",
    "客戶名稱": "name",
    "姓名": "name",
    "名稱": "name",
    "name": "name",
    "mã khách hàng": "customer_code",
    "ma khach hang": "customer_code",
    "客戶編號": "customer_code",
    "編號": "customer_code",
    "客戶代碼": "customer_code",
    "code": "customer_code",
    "customer_code": "customer_code",
    "mail": "email",
    "電子郵件": "email",
    "郵件": "email",
    "email": "email",
    "điện thoại": "phone",
    "dien thoai": "phone",
    "電話": "phone",
    "手機": "phone",
    "phone": "phone",
    "địa chỉ": "address",
    "dia chi": "address",
    "地址": "address",
    "address": "address",
    "phân loại khách hàng": "category_name",
    "phan loai khach hang": "category_name",
    "分類": "category_name",
    "客戶分類": "category_name",
    "類型": "category_name",
    "category": "category_name",
    "note": "notes",
    "備註": "notes",
    "說明": "notes",
    "notes": "notes",
}

# Order and order-item sheets map onto the Vietnamese canonical keys
ORDER_HEADER_SYNONYMS = {
    "ngay tao don hang": "ngay tao don hang",
    "ngày tạo đơn hàng": "ngay tao don hang",
    "ma don hang": "ma don hang",
    "mã đơn hàng": "ma don hang",
    "tong tien don hang": "tong tien don hang",
    "tổng tiền đơn hàng": "tong tien don hang",
    "ma khach hang": "ma khach hang",
    "mã khách hàng": "ma khach hang",
    "note don hang": "note don hang",
    "note đơn hàng": "note don hang",
    "ghi chú": "note don hang",
    "ma san pham": "ma san pham",
    "mã sản phẩm": "ma san pham",
    "ten san pham": "ten san pham",
    "tên sản phẩm": "ten san pham",
    "so luong": "so luong",
    "số lượng": "so luong",
    "數量": "so luong",
    "don vi": "don vi",
    "đơn vị": "don vi",
    "單位": "don vi",
    "單位.": "don vi",
    "don gia": "don gia",
    "đơn giá": "don gia",
    "單價": "don gia",
    "單價.": "don gia",
    "thanh tien": "thanh tien",
    "thành tiền": "thanh tien",
    "金額": "thanh tien",
    "金額.": "thanh tien",
}


def normalize_headers(raw_row: dict[str, Any], synonyms: dict[str, str]) -> dict[str, Any]:
    """Lower-case and trim header names, then map known synonyms to canonical keys."""
    row = {}
    for key, value in raw_row.items():
        if key is None:
            continue
        normalized = str(key).strip().lower()
        row[synonyms.get(normalized, normalized)] = value
    return row


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if text.lower() in EMPTY_MARKERS:
        return None
    return text


def _to_int(value: Any) -> int | None:
    text = _to_text(value)
    if text is None:
        return None
    return int(float(text.replace(",", "")))


def _to_cents(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value * 100
    if isinstance(value, float):
        return int(round(value * 100))
    text = _to_text(value)
    if text is None:
        return None
    text = text.replace("$", "").replace(",", "").replace("₫", "").strip()
    return int(round(float(text) * 100))


def _to_date(value: Any) -> date | None:
    if isinstance(value, (date, datetime)):
        return parse_iso_date(value)
    text = _to_text(value)
    return parse_iso_date(text) if text else None


class BaseImportSchema:
    synonyms: dict[str, str] = {}

    def normalize_row(self, raw_row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def validate_row(self, normalized_row: dict[str, Any]) -> list[str]:
        raise NotImplementedError

    def prepare(self, raw_row: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
        """Normalize and validate; conversion errors are reported, not raised."""
        try:
            normalized = self.normalize_row(normalize_headers(raw_row, self.synonyms))
        except ValueError as e:
            return {}, [f"invalid value ({e})"]
        return normalized, self.validate_row(normalized)


class CustomerImportSchema(BaseImportSchema):
    synonyms = CUSTOMER_HEADER_SYNONYMS

    def normalize_row(self, raw_row):
        email = _to_text(raw_row.get("email"))
        return {
            "name": _to_text(raw_row.get("name")),
            "customer_code": _to_text(raw_row.get("customer_code")),
            "email": email.lower() if email else None,
            "phone": _to_text(raw_row.get("phone")),
            "address": _to_text(raw_row.get("address")),
            "category_name": _to_text(raw_row.get("category_name")),
            "notes": _to_text(raw_row.get("notes")),
        }

    def validate_row(self, normalized_row):
        errors = []
        email = normalized_row.get("email")
        if email and not EMAIL_RE.match(email):
            errors.append(f"invalid email '{email}'")
        return errors


class OrderImportSchema(BaseImportSchema):
    synonyms = ORDER_HEADER_SYNONYMS

    def normalize_row(self, raw_row):
        return {
            "order_number": _to_text(raw_row.get("ma don hang")),
            "customer_code": _to_text(raw_row.get("ma khach hang")),
            "order_date": _to_date(raw_row.get("ngay tao don hang")),
            "total_cents": _to_cents(raw_row.get("tong tien don hang")),
            "notes": _to_text(raw_row.get("note don hang")),
        }

    def validate_row(self, normalized_row):
        errors = []
        if not normalized_row.get("order_number"):
            errors.append("missing order number")
        if not normalized_row.get("customer_code"):
            errors.append("missing customer code")
        return errors


class OrderItemImportSchema(BaseImportSchema):
    synonyms = ORDER_HEADER_SYNONYMS

    def normalize_row(self, raw_row):
        return {
            "order_number": _to_text(raw_row.get("ma don hang")),
            "sku": _to_text(raw_row.get("ma san pham")),
            "product_name": _to_text(raw_row.get("ten san pham")),
            "quantity": _to_int(raw_row.get("so luong")),
            "unit": _to_text(raw_row.get("don vi")),
            "unit_price_cents": _to_cents(raw_row.get("don gia")),
            "line_total_cents": _to_cents(raw_row.get("thanh tien")),
        }

    def validate_row(self, normalized_row):
        errors = []
        if not normalized_row.get("order_number"):
            errors.append("missing order number")
        if not normalized_row.get("sku"):
            errors.append("missing product code")
        quantity = normalized_row.get("quantity")
        if quantity is None or quantity < 1:
            errors.append("quantity must be at least 1")
        return errors
