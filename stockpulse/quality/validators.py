"""
Order Record Validation

Rule-based checks applied to each raw order record and line item as pages
arrive from the API. Invalid records are dropped and counted, they never
fail a page.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from stockpulse.exceptions import ValidationError

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Record dropped


class ValidationStatus(str, Enum):
    """Overall page status"""
    PASSED = "passed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class ValidationIssue:
    """One failed check on one record"""
    check: str
    severity: ValidationSeverity
    message: str
    record_id: Optional[str] = None


@dataclass
class ValidationResult:
    """Outcome of validating one page of order records"""
    total_records: int = 0
    valid_records: int = 0
    dropped_records: int = 0
    dropped_line_items: int = 0
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def status(self) -> ValidationStatus:
        if self.dropped_records == 0 and self.dropped_line_items == 0:
            return ValidationStatus.PASSED
        if self.valid_records == 0 and self.total_records > 0:
            return ValidationStatus.FAILED
        return ValidationStatus.PARTIAL


RecordCheck = Callable[[Record], None]


def check_is_mapping(record: Any) -> None:
    if not isinstance(record, dict):
        raise ValidationError("Order record is not an object")


def check_line_items(record: Record) -> None:
    if not isinstance(record.get("line_items"), list):
        raise ValidationError(f"Order {record.get('id')} has invalid line_items")


def check_created_at(record: Record) -> None:
    if not record.get("created_at"):
        raise ValidationError(f"Order {record.get('id')} missing created_at")


def check_line_item_title(line_item: Any) -> None:
    if not isinstance(line_item, dict):
        raise ValidationError("Line item is not an object")
    if not line_item.get("title") and not line_item.get("name"):
        raise ValidationError("Line item missing title")


class OrderValidator:
    """
    Validates raw order records page by page.

    Example:
        validator = OrderValidator()
        valid, result = validator.validate_page(json["orders"])
    """

    def __init__(self):
        self._order_checks: List[Tuple[str, RecordCheck]] = [
            ("is_object", check_is_mapping),
            ("line_items", check_line_items),
            ("created_at", check_created_at),
        ]
        self._line_item_checks: List[Tuple[str, RecordCheck]] = [
            ("line_item_title", check_line_item_title),
        ]

    def add_order_check(self, name: str, check: RecordCheck) -> "OrderValidator":
        """Register an extra order-level check"""
        self._order_checks.append((name, check))
        return self

    def _run(self, checks: List[Tuple[str, RecordCheck]], record: Any) -> Optional[ValidationIssue]:
        for name, check in checks:
            try:
                check(record)
            except ValidationError as e:
                record_id = record.get("id") if isinstance(record, dict) else None
                return ValidationIssue(
                    check=name,
                    severity=ValidationSeverity.ERROR,
                    message=e.message,
                    record_id=str(record_id) if record_id is not None else None,
                )
        return None

    def validate_order(self, record: Any) -> Optional[ValidationIssue]:
        """Return the first failed check for an order, or None"""
        return self._run(self._order_checks, record)

    def validate_line_item(self, line_item: Any) -> Optional[ValidationIssue]:
        """Return the first failed check for a line item, or None"""
        return self._run(self._line_item_checks, line_item)

    def validate_page(self, records: List[Any]) -> Tuple[List[Record], ValidationResult]:
        """
        Split a page into valid records and a result summary.

        Invalid line items are removed from otherwise valid orders.
        """
        result = ValidationResult(total_records=len(records))
        valid: List[Record] = []

        for record in records:
            issue = self.validate_order(record)
            if issue:
                result.dropped_records += 1
                result.issues.append(issue)
                logger.warning("Dropped invalid order", check=issue.check, order_id=issue.record_id, reason=issue.message)
                continue

            line_items = []
            for line_item in record["line_items"]:
                line_issue = self.validate_line_item(line_item)
                if line_issue:
                    line_issue.record_id = str(record.get("id"))
                    result.dropped_line_items += 1
                    result.issues.append(line_issue)
                    continue
                line_items.append(line_item)

            if len(line_items) != len(record["line_items"]):
                record = {**record, "line_items": line_items}

            valid.append(record)
            result.valid_records += 1

        if result.dropped_line_items:
            logger.warning("Dropped invalid line items", count=result.dropped_line_items)

        return valid, result
