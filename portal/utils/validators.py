"""
Input parsing for request payloads.

Everything here raises ValidationError, so malformed quantities and monetary
values are rejected before they reach the pricing or stage services.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from portal.exceptions import ValidationError

TWO_PLACES = Decimal('0.01')
MAX_QUANTITY = 1_000_000


def parse_quantity(value: Any, field: str = 'quantity') -> int:
    """Parse a positive integer quantity."""
    if isinstance(value, bool) or value is None or value == '':
        raise ValidationError('Quantidade obrigatória.', field=field)
    try:
        as_decimal = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'Quantidade inválida: {value}', field=field)

    if as_decimal != as_decimal.to_integral_value():
        raise ValidationError('Quantidade deve ser um número inteiro.', field=field)

    qty = int(as_decimal)
    if qty <= 0:
        raise ValidationError('Quantidade deve ser maior que zero.', field=field)
    if qty > MAX_QUANTITY:
        raise ValidationError('Quantidade acima do limite permitido.', field=field)
    return qty


def parse_money(value: Any, field: str = 'value', allow_zero: bool = False) -> Decimal:
    """
    Parse a non-negative monetary value into a 2-place Decimal.

    Accepts "1234.5" and Brazilian "1.234,50" notation. Floats are converted
    through str() so binary noise never leaks into the amount.
    """
    if isinstance(value, bool) or value is None or value == '':
        raise ValidationError('Valor obrigatório.', field=field)

    if isinstance(value, str):
        raw = value.strip().replace('R$', '').strip()
        if ',' in raw:
            raw = raw.replace('.', '').replace(',', '.')
    else:
        raw = str(value)

    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValidationError(f'Valor inválido: {value}', field=field)

    if not amount.is_finite():
        raise ValidationError(f'Valor inválido: {value}', field=field)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError('Valor deve ser maior que zero.', field=field)

    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_percentage(value: Any, field: str = 'value') -> Decimal:
    """Parse a percentage in (0, 100]."""
    pct = parse_money(value, field=field)
    if pct > 100:
        raise ValidationError('Percentual não pode exceder 100%.', field=field)
    return pct


def parse_id(value: Any, field: str = 'id') -> int:
    """Parse a positive integer identifier."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Identificador inválido: {value}', field=field)
    if parsed <= 0:
        raise ValidationError(f'Identificador inválido: {value}', field=field)
    return parsed


def optional_text(value: Any, max_length: int = 2000) -> Optional[str]:
    """Strip text input, returning None for blanks."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length]
