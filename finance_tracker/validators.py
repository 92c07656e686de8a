"""Request schemas.

Every mutating route runs its JSON body through :func:`parse_payload` before
touching the database. A rejected payload raises ``ValidationFailed`` naming
the first offending field, so nothing is ever partially applied.
"""
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from .errors import ValidationFailed
from .models import AccountType, EntryType

HEX_COLOR = re.compile(r'^#[0-9a-fA-F]{6}$')
CENT = Decimal('0.01')
MONEY_LIMIT = Decimal('10000000000')
SORT_FIELDS = ('date', 'amount', 'description', 'type', 'createdAt')
MAX_PAGE = 1_000_000


def _rule(message):
    return PydanticCustomError('invalid_field', message)


def _to_money(value: Decimal) -> Decimal:
    # quantize() raises InvalidOperation once the result needs more than 28 digits
    if value.is_finite() and abs(value) < MONEY_LIMIT:
        value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    if not value.is_finite() or abs(value) >= MONEY_LIMIT:
        raise _rule('Amount is too large')
    return value


def _to_date(value):
    """Accept ISO dates as well as ISO datetimes (the time part is dropped)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value.strip()) > 10:
        try:
            return datetime.fromisoformat(value.strip().replace('Z', '+00:00')).date()
        except ValueError:
            raise _rule('Invalid date')
    return value


class Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    # keyed by the external (alias) field name
    required_messages: ClassVar[dict] = {}
    invalid_messages: ClassVar[dict] = {}

    @field_validator('*', mode='before')
    @classmethod
    def _check_required(cls, value, info):
        field = cls.model_fields[info.field_name]
        message = cls.required_messages.get(field.alias or info.field_name)
        if message and (value is None or (isinstance(value, str) and not value.strip())):
            raise _rule(message)
        return value


def parse_payload(schema, data):
    """Validate ``data`` against ``schema`` or raise ``ValidationFailed``."""
    if not isinstance(data, dict):
        raise ValidationFailed('Invalid input')
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        error = exc.errors()[0]
        field = None
        if error['loc']:
            # missing-field errors are located by the python name, not the alias
            field = str(error['loc'][0])
            info = schema.model_fields.get(field)
            if info is not None and info.alias:
                field = info.alias
        if error['type'] == 'invalid_field':
            message = error['msg']
        elif error['type'] == 'missing':
            message = schema.required_messages.get(field, f'{field} is required')
        else:
            message = schema.invalid_messages.get(field, f"{field}: {error['msg']}")
        raise ValidationFailed(message, field=field) from None


# ---------------------- Ledger ----------------------
class TransactionIn(Schema):
    required_messages = {
        'amount': 'Amount is required',
        'date': 'Date is required',
        'description': 'Description is required',
        'type': 'Type is required',
        'categoryId': 'Category is required',
    }
    invalid_messages = {
        'amount': 'Amount must be a number',
        'date': 'Invalid date',
        'type': 'Type must be INCOME or EXPENSE',
        'categoryId': 'Invalid category',
        'accountId': 'Invalid account',
    }

    amount: Decimal = Field(None, validate_default=True)
    txn_date: date = Field(None, alias='date', validate_default=True)
    description: str = Field(None, max_length=255, validate_default=True)
    type: EntryType = Field(None, validate_default=True)
    category_id: int = Field(None, alias='categoryId', validate_default=True)
    account_id: Optional[int] = Field(None, alias='accountId')
    notes: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def _positive(cls, value):
        value = _to_money(value)
        if value <= 0:
            raise _rule('Amount must be positive')
        return value

    @field_validator('txn_date', mode='before')
    @classmethod
    def _coerce_date(cls, value):
        return _to_date(value)

    @field_validator('account_id', 'notes', mode='before')
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CategoryIn(Schema):
    required_messages = {
        'name': 'Name is required',
        'type': 'Type is required',
        'color': 'Color is required',
    }
    invalid_messages = {'type': 'Type must be INCOME or EXPENSE'}

    name: str = Field(None, max_length=100, validate_default=True)
    type: EntryType = Field(None, validate_default=True)
    color: str = Field(None, validate_default=True)
    icon: Optional[str] = None

    @field_validator('color')
    @classmethod
    def _hex(cls, value):
        if not HEX_COLOR.match(value):
            raise _rule('Invalid hex color')
        return value


class AccountIn(Schema):
    required_messages = {
        'name': 'Name is required',
        'type': 'Type is required',
        'initialBalance': 'Initial balance is required',
    }
    invalid_messages = {
        'type': 'Type must be BANK, UPI or CREDIT_CARD',
        'initialBalance': 'Initial balance must be a number',
    }

    name: str = Field(None, validate_default=True)
    type: AccountType = Field(None, validate_default=True)
    initial_balance: Decimal = Field(None, alias='initialBalance', validate_default=True)

    @field_validator('name')
    @classmethod
    def _short(cls, value):
        if len(value) > 50:
            raise _rule('Name is too long')
        return value

    @field_validator('initial_balance')
    @classmethod
    def _money(cls, value):
        return _to_money(value)


# ---------------------- Auth ----------------------
class _PasswordRules(Schema):
    @field_validator('password', check_fields=False)
    @classmethod
    def _long_enough(cls, value):
        if len(value) < 6:
            raise _rule('Password must be at least 6 characters')
        return value

    @field_validator('confirm_password', check_fields=False)
    @classmethod
    def _matches(cls, value, info):
        if 'password' in info.data and value != info.data['password']:
            raise _rule("Passwords don't match")
        return value


class RegisterIn(_PasswordRules):
    required_messages = {
        'name': 'Name is required',
        'email': 'Invalid email address',
        'password': 'Password must be at least 6 characters',
        'confirmPassword': 'Please confirm your password',
    }
    invalid_messages = {'email': 'Invalid email address'}

    name: str = Field(None, max_length=120, validate_default=True)
    email: EmailStr = Field(None, validate_default=True)
    password: str = Field(None, validate_default=True)
    confirm_password: str = Field(None, alias='confirmPassword', validate_default=True)


class LoginIn(_PasswordRules):
    required_messages = {
        'email': 'Invalid email address',
        'password': 'Password must be at least 6 characters',
    }
    invalid_messages = {'email': 'Invalid email address'}

    email: EmailStr = Field(None, validate_default=True)
    password: str = Field(None, validate_default=True)


class ForgotPasswordIn(Schema):
    required_messages = {'email': 'Invalid email address'}
    invalid_messages = {'email': 'Invalid email address'}

    email: EmailStr = Field(None, validate_default=True)


class ResetPasswordIn(_PasswordRules):
    required_messages = {
        'token': 'Token is required',
        'password': 'Password must be at least 6 characters',
        'confirmPassword': 'Please confirm your password',
    }

    token: str = Field(None, validate_default=True)
    password: str = Field(None, validate_default=True)
    confirm_password: str = Field(None, alias='confirmPassword', validate_default=True)


# ---------------------- Query strings ----------------------
class _Query(Schema):
    @field_validator('*', mode='before')
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TransactionQuery(_Query):
    invalid_messages = {
        'page': 'Page must be an integer',
        'pageSize': 'Page size must be an integer',
        'type': 'Type must be INCOME or EXPENSE',
        'categoryId': 'Invalid category',
        'startDate': 'Invalid start date',
        'endDate': 'Invalid end date',
        'sortBy': 'Invalid sort field',
        'sortOrder': 'Sort order must be asc or desc',
    }

    page: Optional[int] = None
    page_size: Optional[int] = Field(None, alias='pageSize')
    search: Optional[str] = None
    type: Optional[EntryType] = None
    category_id: Optional[int] = Field(None, alias='categoryId')
    start_date: Optional[date] = Field(None, alias='startDate')
    end_date: Optional[date] = Field(None, alias='endDate')
    sort_by: Optional[Literal[SORT_FIELDS]] = Field(None, alias='sortBy')
    sort_order: Optional[Literal['asc', 'desc']] = Field(None, alias='sortOrder')

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def _coerce_date(cls, value):
        return _to_date(value)

    @field_validator('page')
    @classmethod
    def _bounded_page(cls, value):
        # the row offset has to fit a 64-bit database integer
        if value is not None and value > MAX_PAGE:
            raise _rule('Page is too large')
        return value


class CategoryQuery(_Query):
    invalid_messages = {'type': 'Type must be INCOME or EXPENSE'}

    type: Optional[EntryType] = None
