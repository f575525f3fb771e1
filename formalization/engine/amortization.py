"""Fixed-installment amortization for credit contracts.

Pure functions: Decimal in, dataclass out. No I/O.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

from dateutil.relativedelta import relativedelta

TWO_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.0000000001")  # 10 fractional digits for the monthly rate

SATURDAY = 5
SUNDAY = 6


@dataclass(frozen=True)
class NoteDraft:
    installment_number: int
    amount: Decimal
    due_date: date


@dataclass(frozen=True)
class AmortizationRow:
    period: int
    payment: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal


@dataclass(frozen=True)
class AmortizationTable:
    rows: list[AmortizationRow]
    installment: Decimal
    total_interest: Decimal
    total_paid: Decimal


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Nominal annual percentage to monthly decimal rate (12.00 -> 0.01)."""
    return (annual_rate / 1200).quantize(RATE_PLACES, ROUND_HALF_UP)


def installment_amount(
    principal: Decimal, annual_rate: Decimal | None, term_months: int
) -> Decimal:
    """Fixed monthly installment.

    Zero (or missing) rate splits the principal evenly. Otherwise the annuity
    formula M = P * r(1+r)^n / ((1+r)^n - 1) is evaluated at full precision and
    rounded half-up to cents only at the end.
    """
    if principal <= 0:
        raise ValueError(f"principal must be positive, got {principal}")
    if term_months <= 0:
        raise ValueError(f"term must be a positive number of months, got {term_months}")
    if annual_rate is not None and annual_rate < 0:
        raise ValueError(f"annual rate cannot be negative, got {annual_rate}")

    if not annual_rate:
        payment = principal / term_months
    else:
        r = monthly_rate(annual_rate)
        factor = (1 + r) ** term_months
        payment = principal * r * factor / (factor - 1)

    payment = payment.quantize(TWO_PLACES, ROUND_HALF_UP)
    if payment <= 0:
        raise ValueError(f"principal {principal} is too small for {term_months} installments")
    return payment


def adjust_to_business_day(day: date) -> date:
    """Saturday moves back to Friday, Sunday moves forward to Monday."""
    if day.weekday() == SATURDAY:
        return day - timedelta(days=1)
    if day.weekday() == SUNDAY:
        return day + timedelta(days=1)
    return day


def first_due_date(generated_on: date) -> date:
    """A contract's first installment falls due one month after generation."""
    return generated_on + relativedelta(months=1)


def due_dates(start_date: date, term_months: int, adjust_weekends: bool = False) -> list[date]:
    """start_date + i months for i in 0..term-1 (day clamped to month end)."""
    dates = [start_date + relativedelta(months=i) for i in range(term_months)]
    if adjust_weekends:
        dates = [adjust_to_business_day(d) for d in dates]
    return dates


def amortization_table(
    principal: Decimal, annual_rate: Decimal | None, term_months: int
) -> AmortizationTable:
    """Period-by-period split of each installment into principal and interest.

    Interest is rounded to cents every period; the final row pays off whatever
    balance is left so the table always closes at zero.
    """
    pmt = installment_amount(principal, annual_rate, term_months)
    r = monthly_rate(annual_rate) if annual_rate else Decimal("0")

    rows: list[AmortizationRow] = []
    balance = principal
    total_interest = Decimal("0")
    total_paid = Decimal("0")

    for period in range(1, term_months + 1):
        interest = (balance * r).quantize(TWO_PLACES, ROUND_HALF_UP)
        principal_paid = pmt - interest

        # Final payment adjustment
        if period == term_months or principal_paid > balance:
            principal_paid = balance
        actual_payment = interest + principal_paid

        balance -= principal_paid
        total_interest += interest
        total_paid += actual_payment

        rows.append(AmortizationRow(
            period=period,
            payment=actual_payment,
            principal=principal_paid,
            interest=interest,
            balance=balance,
        ))

    return AmortizationTable(
        rows=rows,
        installment=pmt,
        total_interest=total_interest,
        total_paid=total_paid,
    )


def build_schedule(
    principal: Decimal,
    annual_rate: Decimal | None,
    term_months: int,
    start_date: date,
    adjust_weekends: bool = False,
    absorb_remainder: bool = False,
) -> list[NoteDraft]:
    """Build the note drafts for a schedule, numbered 1..term.

    Every installment carries the same amount unless absorb_remainder is set,
    in which case the last one is resized so the schedule retires the
    principal exactly.
    """
    pmt = installment_amount(principal, annual_rate, term_months)
    amounts = [pmt] * term_months

    if absorb_remainder:
        final = amortization_table(principal, annual_rate, term_months).rows[-1].payment
        if final <= 0:
            raise ValueError(
                f"principal {principal} is too small for {term_months} installments"
            )
        amounts[-1] = final

    dates = due_dates(start_date, term_months, adjust_weekends)
    return [
        NoteDraft(installment_number=i, amount=amount, due_date=due)
        for i, (amount, due) in enumerate(zip(amounts, dates), start=1)
    ]
