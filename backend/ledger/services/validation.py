"""
Billing Ledger Backend — Input Checks Shared by the Writers
============================================================

What:  Required-field and amount checks used by the client, invoice and
       payment services before any row is written.
"""

from decimal import Decimal
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel

from ledger.exceptions import ValidationError

# Amounts are stored as NUMERIC(12,2)
MAX_AMOUNT = Decimal("9999999999.99")
CENTS = Decimal("0.01")


def to_money(amount: Decimal) -> Decimal:
    """`amount` at two decimal places, the scale it is stored and read back with."""
    return amount.quantize(CENTS)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_fields(entry: BaseModel, required: Sequence[str]) -> List[str]:
    """Names of the required fields that are absent, null or blank."""
    return [name for name in required if is_blank(getattr(entry, name, None))]


def amount_problem(amount: Decimal) -> Optional[str]:
    """
    Describes why `amount` is not a storable positive money value, or None.
    """
    if amount <= 0:
        return "must be greater than zero"
    if amount > MAX_AMOUNT:
        return f"must not exceed {MAX_AMOUNT}"
    exponent = amount.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -2:
        return "must have at most two decimal places"
    return None


def check_amount(amount: Decimal, label: str, field: str = "amount") -> None:
    problem = amount_problem(amount)
    if problem:
        raise ValidationError(
            message=f"{label}: {field} {problem}",
            field=field,
            context={"value": str(amount)},
        )


def check_batch_fields(
    entries: Sequence[BaseModel],
    required: Sequence[str],
    noun: str,
) -> None:
    """
    Checks every entry of a batch and raises one ValidationError covering all
    incomplete or invalid entries. Nothing is written when this raises.
    """
    problems = []
    for index, entry in enumerate(entries):
        missing = missing_fields(entry, required)
        if missing:
            problems.append({"index": index, "missing": missing})
            continue
        amount = getattr(entry, "amount", None)
        if amount is not None:
            problem = amount_problem(amount)
            if problem:
                problems.append({"index": index, "field": "amount", "problem": problem})

    if not problems:
        return

    fields = sorted({name for p in problems for name in p.get("missing", [p.get("field")])})
    parts = []
    for p in problems:
        if "missing" in p:
            parts.append(f"{noun} {p['index']} is missing {', '.join(p['missing'])}")
        else:
            parts.append(f"{noun} {p['index']}: {p['field']} {p['problem']}")
    raise ValidationError(
        message="; ".join(parts),
        fields=fields,
        context={"errors": problems},
    )
