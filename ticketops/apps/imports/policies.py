"""Named constants for mapping, validation and classification.

Alias tables are ordered by priority; lookups are case-insensitive.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Final

IMPORT_TYPE_DELIVERY: Final = "delivery"
IMPORT_TYPE_SERVICE: Final = "service"
IMPORT_TYPES: Final = (IMPORT_TYPE_DELIVERY, IMPORT_TYPE_SERVICE)

# Delivery tickets: target column -> source aliases
DELIVERY_FIELD_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "date": ("date", "delivery_date", "ticket_date"),
    "ticket_number": ("ticket_number", "ticketnumber", "ticket", "ticket_no", "record", "refer"),
    "store": ("store", "location"),
    "product": ("product", "fuel", "grade"),
    "driver": ("driver", "driver_name"),
    "truck": ("truck", "truck_number", "vehicle"),
    "qty": ("qty", "gallons", "quantity", "gal"),
    "price": ("price", "unit_price", "rate"),
    "tax": ("tax",),
    "amount": ("amount", "total", "extension"),
    "status": ("status",),
    "notes": ("notes", "description", "memo"),
    "customerName": ("customer", "customername", "customer_name", "account"),
    "account": ("account", "account_number", "acct"),
}

# Validation groups for the delivery path
DATE_ALIASES: Final = DELIVERY_FIELD_ALIASES["date"]
TICKET_OR_TRUCK_ALIASES: Final = (
    DELIVERY_FIELD_ALIASES["ticket_number"]
    + DELIVERY_FIELD_ALIASES["truck"]
    + DELIVERY_FIELD_ALIASES["driver"]
)
QUANTITY_ALIASES: Final = DELIVERY_FIELD_ALIASES["qty"]
AMOUNT_ALIASES: Final = DELIVERY_FIELD_ALIASES["amount"] + QUANTITY_ALIASES

# Provenance copied into the meta column of every written record
META_COLUMN: Final = "meta"
PROVENANCE_ROW_KEYS: Final = ("page", "y")
RAW_COLUMNS_KEY: Final = "rawColumns"

# Service jobs: fixed shape, target -> (aliases, default)
SERVICE_DEFAULT_STATUS: Final = "pending"
SERVICE_DEFAULT_AMOUNT: Final = 0
SERVICE_DEFAULT_TEXT: Final = ""
SERVICE_FIELD_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "job_number": ("jobnumber", "job_number", "job"),
    "customer_name": ("customer", "customername", "customer_name"),
    "address": ("address",),
    "job_date": ("date", "job_date"),
    "job_amount": ("amount", "job_amount"),
    "status": ("status",),
    "primary_tech": ("tech", "technician", "primary_tech"),
    "job_description": ("description", "service", "job_description"),
}
SERVICE_TEXT_FIELDS: Final = (
    "job_number",
    "customer_name",
    "address",
    "primary_tech",
    "job_description",
)

# Failure reasons reported in parsed.failedRows
REASON_VALIDATION_FAILED: Final = "Missing required fields or validation failed"
REASON_UNMAPPABLE: Final = "No mappable columns"
REASON_MISSING_JOB_NUMBER: Final = "Missing job number"
REASON_DUPLICATE_JOB_NUMBER: Final = "Duplicate job number superseded by a later row"

# Classifier heuristics
DELIVERY_TOKENS: Final = (
    "record",
    "refer",
    "account",
    "customer",
    "driver",
    "truck",
    "gallons",
    "qty",
    "amount",
    "extension",
)
DELIVERY_TOKEN_THRESHOLD: Final = 4
DELIVERY_CONFIDENCE_DENOMINATOR: Final = 8

# Review summary
SCHEDULED_STATUS_TOKENS: Final = ("scheduled", "assigned", "confirmed")

ZERO: Final = Decimal("0")
