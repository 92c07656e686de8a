import enum
from datetime import datetime
from decimal import Decimal

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

MONEY = db.Numeric(12, 2, asdecimal=True)


class EntryType(enum.Enum):
    INCOME = 'INCOME'
    EXPENSE = 'EXPENSE'


class AccountType(enum.Enum):
    BANK = 'BANK'
    UPI = 'UPI'
    CREDIT_CARD = 'CREDIT_CARD'


def money(value) -> float:
    """Render a stored Decimal as a JSON number."""
    return float(value if value is not None else Decimal('0'))


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    reset_token = db.Column(db.String(64), unique=True, nullable=True)
    reset_token_expiry = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    accounts = db.relationship('Account', backref='user', lazy=True, cascade="all, delete-orphan")
    categories = db.relationship('Category', backref='user', lazy=True, cascade="all, delete-orphan")
    transactions = db.relationship('Transaction', backref='user', lazy=True, cascade="all, delete-orphan")

    def summary(self):
        return {'id': self.id, 'email': self.email, 'name': self.name}


class Account(db.Model):
    __table_args__ = (db.UniqueConstraint('user_id', 'name', name='uq_account_user_name'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    type = db.Column(db.Enum(AccountType), nullable=False)
    initial_balance = db.Column(MONEY, nullable=False, default=Decimal('0'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    transactions = db.relationship('Transaction', backref='account', lazy=True)

    def to_dict(self, current_balance: Decimal):
        return {
            'id': self.id,
            'userId': self.user_id,
            'name': self.name,
            'type': self.type.value,
            'initialBalance': money(self.initial_balance),
            'currentBalance': money(current_balance),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class Category(db.Model):
    __table_args__ = (db.UniqueConstraint('user_id', 'name', name='uq_category_user_name'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.Enum(EntryType), nullable=False)
    color = db.Column(db.String(7), nullable=False)
    icon = db.Column(db.String(50), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    transactions = db.relationship('Transaction', backref='category', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'name': self.name,
            'type': self.type.value,
            'color': self.color,
            'icon': self.icon,
            'isDefault': self.is_default,
            'createdAt': _iso(self.created_at),
        }


class Transaction(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(MONEY, nullable=False)  # always positive
    type = db.Column(db.Enum(EntryType), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'accountId': self.account_id,
            'categoryId': self.category_id,
            'amount': money(self.amount),
            'date': self.date.isoformat(),
            'description': self.description,
            'type': self.type.value,
            'notes': self.notes,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
            'category': self.category.to_dict() if self.category else None,
        }
