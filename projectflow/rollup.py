"""
projectflow/rollup.py

Financial rollup rules shared by every document type.

These are plain functions over Decimal values and duck-typed line objects.
They never touch the database: model ``recalc_totals()`` methods feed them the
current in-memory lines and copy the results back, and the workflow calls
``recalc_totals()`` explicitly before each write.

Rounding: money is quantized to 0.01 with ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional, Sequence

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Convert Numeric/float/str/None to Decimal (None -> 0.00)."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: Any, unit_price: Any) -> Decimal:
    """quantity x unit price (labour: days x daily price)."""
    return money(to_decimal(quantity) * to_decimal(unit_price))


def sum_totals(lines: Iterable[Any], attr: str) -> Decimal:
    total = ZERO
    for line in lines:
        total += to_decimal(getattr(line, attr))
    return money(total)


# ---------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class EstimationTotals:
    materials_total: Decimal
    labour_total: Decimal
    terms_total: Decimal
    estimated_amount: Decimal
    profit: Optional[Decimal]


def estimation_profit(
    quotation_amount: Any, estimated_amount: Any, commission_amount: Any = None
) -> Optional[Decimal]:
    """Profit is only defined once a quotation amount is recorded. May be negative."""
    if quotation_amount is None:
        return None
    return money(to_decimal(quotation_amount) - to_decimal(estimated_amount) - to_decimal(commission_amount))


def estimation_totals(
    materials: Sequence[Any],
    labour: Sequence[Any],
    terms: Sequence[Any],
    quotation_amount: Any = None,
    commission_amount: Any = None,
) -> EstimationTotals:
    materials_total = money(sum((line_total(m.quantity, m.unit_price) for m in materials), ZERO))
    labour_total = money(sum((line_total(l.days, l.price) for l in labour), ZERO))
    terms_total = money(sum((line_total(t.quantity, t.unit_price) for t in terms), ZERO))
    estimated = money(materials_total + labour_total + terms_total)

    return EstimationTotals(
        materials_total=materials_total,
        labour_total=labour_total,
        terms_total=terms_total,
        estimated_amount=estimated,
        profit=estimation_profit(quotation_amount, estimated, commission_amount),
    )


# ---------------------------------------------------------------------
# Quotation / LPO
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class QuotationTotals:
    subtotal: Decimal
    vat_amount: Decimal
    net_amount: Decimal


def vat_amount(subtotal: Any, vat_percentage: Any) -> Decimal:
    """round(subtotal x vat% / 100). vat_percentage is always a percent (5 means 5%)."""
    rate = to_decimal(vat_percentage)
    if rate < 0:
        raise ValueError("VAT percentage cannot be negative")
    return money(to_decimal(subtotal) * rate / Decimal("100"))


def quotation_totals(items: Sequence[Any], vat_percentage: Any) -> QuotationTotals:
    subtotal = money(sum((line_total(i.quantity, i.unit_price) for i in items), ZERO))
    vat = vat_amount(subtotal, vat_percentage)
    return QuotationTotals(subtotal=subtotal, vat_amount=vat, net_amount=money(subtotal + vat))


def lpo_total(items: Sequence[Any]) -> Decimal:
    return money(sum((line_total(i.quantity, i.unit_price) for i in items), ZERO))


# ---------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class LaborRow:
    user_id: int
    role: str
    days_present: int
    daily_salary: Decimal
    total_salary: Decimal


def labor_cost_rows(
    people: Iterable[Any], days_present_by_user: Mapping[int, int], role: str
) -> list[LaborRow]:
    """
    Daily-rate x days-present table.

    ``people`` are user-like objects with ``id`` and ``daily_salary``; days
    come from the attendance collaborator, never from the request.
    """
    rows = []
    for person in people:
        days = int(days_present_by_user.get(person.id, 0))
        rate = money(person.daily_salary)
        rows.append(
            LaborRow(
                user_id=person.id,
                role=role,
                days_present=days,
                daily_salary=rate,
                total_salary=money(rate * days),
            )
        )
    return rows


@dataclass(frozen=True)
class ExpenseTotals:
    material: Decimal
    miscellaneous: Decimal
    labor: Decimal

    @property
    def total(self) -> Decimal:
        return money(self.material + self.miscellaneous + self.labor)


def expense_totals(materials: Sequence[Any], miscellaneous: Sequence[Any], labor: Sequence[Any]) -> ExpenseTotals:
    return ExpenseTotals(
        material=sum_totals(materials, "amount"),
        miscellaneous=money(sum((line_total(m.quantity, m.unit_price) for m in miscellaneous), ZERO)),
        labor=sum_totals(labor, "total_salary"),
    )


def project_profit(quotation_subtotal: Any, expense_total: Any, commission_amount: Any = None) -> Decimal:
    """Realised profit: quoted (pre-VAT) revenue minus actual expenses and commission."""
    return money(to_decimal(quotation_subtotal) - to_decimal(expense_total) - to_decimal(commission_amount))
