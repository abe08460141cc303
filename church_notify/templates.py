"""
Message templates for inserted records.
Missing optional fields render as empty text, never as "None".
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional

from .categories import Category

CURRENCY_SYMBOLS = {
    'KES': 'KES',
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
    'ZAR': 'R',
    'UGX': 'UGX',
    'TZS': 'TSh',
}
DEFAULT_CURRENCY_SYMBOL = '$'


def _text(record: Mapping[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None:
        return ''
    return str(value).strip()


def _join(*parts: str) -> str:
    return ' '.join(part for part in parts if part)


def currency_symbol(currency: Optional[str]) -> str:
    if not currency:
        return DEFAULT_CURRENCY_SYMBOL
    code = str(currency).strip().upper()
    return CURRENCY_SYMBOLS.get(code, code)


def format_amount(amount: Any, currency: Optional[str] = None) -> str:
    if amount is None or amount == '':
        return ''
    try:
        text = format(Decimal(str(amount)).normalize(), 'f')
    except InvalidOperation:
        text = str(amount).strip()
    symbol = currency_symbol(currency)
    # word-like symbols read better spaced: "KES 500", "$500"
    if len(symbol) > 1 and symbol.isalpha():
        return f"{symbol} {text}"
    return f"{symbol}{text}"


def _donation(record):
    amount = format_amount(record.get('amount'), record.get('currency'))
    donor = '' if record.get('is_anonymous') else _text(record, 'donor_first_name')
    message = _join('New donation of', amount, 'received') if amount else 'New donation received'
    if donor:
        message = _join(message, 'from', donor)
    return message


def _member(record):
    return _join(_text(record, 'first_name'), _text(record, 'last_name'), 'joined as a new member')


def _prayer(record):
    subject = _text(record, 'subject')
    lead = _join(_text(record, 'first_name'), 'submitted a prayer request')
    return f"{lead}: {subject}" if subject else lead


def _contact(record):
    subject = _text(record, 'subject')
    lead = _join(_text(record, 'first_name'), _text(record, 'last_name'), 'sent a message')
    return f"{lead}: {subject}" if subject else lead


def _volunteer(record):
    return _join(_text(record, 'first_name'), _text(record, 'last_name'), 'signed up to volunteer')


def _event(record):
    title = _text(record, 'title')
    return _join('Event', f'"{title}"' if title else '', 'has been created')


def _sermon(record):
    preacher = _text(record, 'preacher')
    title = _text(record, 'title')
    message = _join('Sermon', f'"{title}"' if title else '')
    if preacher:
        message = _join(message, 'by', preacher)
    return _join(message, 'has been added')


RENDERERS: Dict[Category, Callable[[Mapping[str, Any]], str]] = {
    Category.DONATION: _donation,
    Category.MEMBER: _member,
    Category.PRAYER: _prayer,
    Category.CONTACT: _contact,
    Category.VOLUNTEER: _volunteer,
    Category.EVENT: _event,
    Category.SERMON: _sermon,
}

_unrendered = [c.value for c in Category if c not in RENDERERS]
if _unrendered:
    raise RuntimeError(f"Categories without a message template: {_unrendered}")


def render_message(category: Category, record: Mapping[str, Any]) -> str:
    return RENDERERS[Category(category)](record)
