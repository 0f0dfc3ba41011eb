"""
Value objects shared across the domain apps.

They are immutable, validate on construction and raise ``ValueError`` on
invalid input. Models store their parts in plain columns (or JSON for
addresses) and rebuild the value object when behaviour is needed.
"""

import re
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

TWO_PLACES = Decimal('0.01')
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
AWB_PATTERN = re.compile(r'^[A-Z0-9]{6,30}$')
VOLUMETRIC_DIVISOR = Decimal('5000')


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except ArithmeticError as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


@dataclass(frozen=True)
class Money:
    """Non-negative amount in a single currency (defaults to INR)."""

    amount: Decimal
    currency: str = 'INR'

    def __post_init__(self):
        amount = to_decimal(self.amount)
        if amount < 0:
            raise ValueError("Money amount cannot be negative.")
        currency = (self.currency or '').strip().upper()
        if not currency:
            raise ValueError("Currency is required.")
        if len(currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, 'amount', amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))
        object.__setattr__(self, 'currency', currency)

    @classmethod
    def zero(cls, currency='INR'):
        return cls(Decimal('0'), currency)

    def _check_currency(self, other):
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise ValueError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def add(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        if other.amount > self.amount:
            raise ValueError("Result of subtraction cannot be negative.")
        return Money(self.amount - other.amount, self.currency)

    def multiply(self, factor) -> 'Money':
        factor = to_decimal(factor)
        if factor < 0:
            raise ValueError("Multiplication factor cannot be negative.")
        return Money(self.amount * factor, self.currency)

    __add__ = add
    __sub__ = subtract

    def __mul__(self, factor):
        return self.multiply(factor)

    def __lt__(self, other):
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other):
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other):
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other):
        self._check_currency(other)
        return self.amount >= other.amount

    @property
    def is_zero(self):
        return self.amount == 0

    def __str__(self):
        return f"{self.currency} {self.amount:,.2f}"


@dataclass(frozen=True)
class Address:
    name: str
    phone: str
    line1: str
    city: str
    state: str
    postal_code: str
    line2: str = ''
    country: str = 'India'

    REQUIRED_FIELDS = ('name', 'phone', 'line1', 'city', 'state', 'postal_code')

    def __post_init__(self):
        for field_name in ('name', 'phone', 'line1', 'line2', 'city', 'state', 'postal_code', 'country'):
            value = getattr(self, field_name)
            object.__setattr__(self, field_name, (value or '').strip())
        missing = [f for f in self.REQUIRED_FIELDS if not getattr(self, f)]
        if missing:
            raise ValueError(f"Address is missing required fields: {', '.join(missing)}")
        if not self.country:
            object.__setattr__(self, 'country', 'India')

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Address':
        data = data or {}
        return cls(
            name=data.get('name', ''),
            phone=data.get('phone', ''),
            line1=data.get('line1', ''),
            line2=data.get('line2', '') or '',
            city=data.get('city', ''),
            state=data.get('state', ''),
            postal_code=data.get('postal_code', ''),
            country=data.get('country', '') or 'India',
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def full_address(self) -> str:
        parts = [self.line1]
        if self.line2:
            parts.append(self.line2)
        parts.extend([self.city, f"{self.state} - {self.postal_code}", self.country])
        return ', '.join(parts)


@dataclass(frozen=True)
class Dimensions:
    """Parcel dimensions in centimetres and weight in kilograms."""

    length: Decimal
    width: Decimal
    height: Decimal
    weight: Decimal

    def __post_init__(self):
        for field_name in ('length', 'width', 'height', 'weight'):
            value = to_decimal(getattr(self, field_name))
            if value <= 0:
                raise ValueError(f"{field_name.capitalize()} must be positive.")
            object.__setattr__(self, field_name, value)

    @property
    def volumetric_weight(self) -> Decimal:
        return (self.length * self.width * self.height / VOLUMETRIC_DIVISOR).quantize(
            Decimal('0.001'), rounding=ROUND_HALF_UP
        )

    @property
    def chargeable_weight(self) -> Decimal:
        return max(self.weight, self.volumetric_weight)


@dataclass(frozen=True)
class Email:
    value: str

    def __post_init__(self):
        normalised = (self.value or '').strip().lower()
        if not normalised:
            raise ValueError("Email is required.")
        if not EMAIL_PATTERN.match(normalised):
            raise ValueError(f"Invalid email address: {self.value!r}")
        object.__setattr__(self, 'value', normalised)

    @property
    def domain(self) -> str:
        return self.value.split('@', 1)[1]

    def masked(self) -> str:
        local, domain = self.value.split('@', 1)
        return f"{local[:2]}***@{domain}"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class PhoneNumber:
    number: str
    country_code: str = '+91'

    def __post_init__(self):
        digits = re.sub(r'\D', '', self.number or '')
        if not 10 <= len(digits) <= 15:
            raise ValueError(f"Invalid phone number: {self.number!r}")
        code = (self.country_code or '+91').strip()
        if not code.startswith('+'):
            code = f'+{code}'
        object.__setattr__(self, 'number', digits)
        object.__setattr__(self, 'country_code', code)

    @property
    def full(self) -> str:
        return f"{self.country_code}{self.number}"

    def __str__(self):
        return self.full


@dataclass(frozen=True)
class Awb:
    """Air waybill number issued by a courier."""

    number: str
    courier: str = ''

    def __post_init__(self):
        normalised = re.sub(r'\s+', '', self.number or '').upper()
        if not AWB_PATTERN.match(normalised):
            raise ValueError(f"Invalid AWB number: {self.number!r}")
        object.__setattr__(self, 'number', normalised)

    def __str__(self):
        return self.number
