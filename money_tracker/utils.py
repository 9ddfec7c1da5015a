import calendar
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Tuple

from .errors import ValidationError

CENTS = Decimal('0.01')
# Numeric(12, 2): cel mult 10 cifre inainte de virgula
MAX_AMOUNT = Decimal('10000000000')

# numele lunilor pentru seria de evolutie
MONTH_NAMES = [
    'Janvier', 'Février', 'Mars', 'Avril', 'Mai', 'Juin',
    'Juillet', 'Août', 'Septembre', 'Octobre', 'Novembre', 'Décembre',
]


def to_decimal(value, field='amount') -> Decimal:
    """Converteste o suma (int, float, str, Decimal) la Decimal rotunjit la 2 zecimale.

    Ridica ValidationError pentru valori care nu sunt numerice.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f'Suma pentru {field} lipsește.', {field: ['Valoare obligatorie.']})
    try:
        if isinstance(value, float):
            value = str(value)
        amount = Decimal(value)
        if not amount.is_finite():
            raise InvalidOperation
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f'Suma pentru {field} nu este validă: {value!r}',
                              {field: ['Valoare numerică invalidă.']})
    if abs(amount) >= MAX_AMOUNT:
        raise ValidationError(f'Suma pentru {field} este prea mare: {value!r}',
                              {field: ['Suma trebuie să fie mai mică de 10 000 000 000.']})
    return amount


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    # prima si ultima zi calendaristica din luna
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def percentage(part, whole) -> float:
    """part / whole * 100, 0 cand whole este 0 (nu eroare de impartire)"""
    if not whole:
        return 0.0
    return round(float(Decimal(part) / Decimal(whole) * 100), 2)


def parse_bool(v: Optional[str]) -> Optional[bool]:
    if v is None:
        return None
    v = str(v).strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return None
