"""
Utilidades de formateo para documentos e respostas.
Formatos de números e datas no padrão brasileiro.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional


def num_br(value: Union[int, float, Decimal, str, None], decimals: int = 2) -> str:
    """
    Formata um número no padrão brasileiro:
    - Separador de milhar: ponto (.)
    - Separador decimal: vírgula (,)

    Examples:
        num_br(1500) -> "1.500,00"
        num_br(1500.5) -> "1.500,50"
        num_br(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    num = num.quantize(Decimal(10) ** -decimals)
    negative = num < 0
    integer_part, _, decimal_part = f"{abs(num):f}".partition('.')

    # Agrupar milhares
    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)

    formatted = '.'.join(groups)
    if decimals > 0:
        formatted = f"{formatted},{decimal_part}"
    return f"-{formatted}" if negative else formatted


def money_br(value: Union[int, float, Decimal, str, None]) -> str:
    """Formata valor monetário em reais: money_br(1234.5) -> "R$ 1.234,50"."""
    formatted = num_br(value, decimals=2)
    if formatted == "-":
        return formatted
    if formatted.startswith('-'):
        return f"-R$ {formatted[1:]}"
    return f"R$ {formatted}"


def date_br(value: Optional[Union[date, datetime]]) -> str:
    """Formata data como dd/mm/aaaa."""
    if value is None:
        return "-"
    return value.strftime('%d/%m/%Y')


def datetime_br(value: Optional[datetime]) -> str:
    """Formata data e hora como dd/mm/aaaa HH:MM."""
    if value is None:
        return "-"
    return value.strftime('%d/%m/%Y %H:%M')
