"""Account balances and the transaction listing.

Balances are never stored: every read re-sums the account's transactions,
so adding, editing or deleting a transaction is reflected immediately.
"""
import math
from decimal import Decimal

from sqlalchemy import case, func

from .models import Account, EntryType, Transaction, db

ZERO = Decimal('0')

SORT_COLUMNS = {
    'date': Transaction.date,
    'amount': Transaction.amount,
    'description': Transaction.description,
    'type': Transaction.type,
    'createdAt': Transaction.created_at,
}

DEFAULT_PAGE_SIZE = 10


def as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def signed_totals():
    return (
        func.sum(case((Transaction.type == EntryType.INCOME, Transaction.amount), else_=0)).label('income'),
        func.sum(case((Transaction.type == EntryType.EXPENSE, Transaction.amount), else_=0)).label('expense'),
    )


def balances_for(accounts) -> dict:
    """Map account id -> current balance for the given (already owned) accounts."""
    ids = [a.id for a in accounts]
    totals = {}
    if ids:
        rows = (
            db.session.query(Transaction.account_id, *signed_totals())
            .filter(Transaction.account_id.in_(ids), Transaction.user_id == accounts[0].user_id)
            .group_by(Transaction.account_id)
            .all()
        )
        totals = {r[0]: (as_decimal(r[1]), as_decimal(r[2])) for r in rows}
    balances = {}
    for account in accounts:
        income, expense = totals.get(account.id, (ZERO, ZERO))
        balances[account.id] = as_decimal(account.initial_balance) + income - expense
    return balances


def account_balance(account) -> Decimal:
    return balances_for([account])[account.id]


def list_accounts(user_id):
    accounts = Account.query.filter_by(user_id=user_id).order_by(Account.name.asc(), Account.id.asc()).all()
    balances = balances_for(accounts)
    return [a.to_dict(balances[a.id]) for a in accounts]


def count_account_transactions(account) -> int:
    return Transaction.query.filter_by(account_id=account.id, user_id=account.user_id).count()


# ---------------------- Listing ----------------------
def _apply_filters(query, params):
    if params.search:
        query = query.filter(Transaction.description.icontains(params.search, autoescape=True))
    if params.type:
        query = query.filter(Transaction.type == params.type)
    if params.category_id:
        query = query.filter(Transaction.category_id == params.category_id)
    if params.start_date:
        query = query.filter(Transaction.date >= params.start_date)
    if params.end_date:
        query = query.filter(Transaction.date <= params.end_date)
    return query


def list_transactions(user_id, params, max_page_size=100):
    """Return the paginated envelope for ``params`` (a ``TransactionQuery``)."""
    page = max(params.page or 1, 1)
    page_size = min(max(params.page_size or DEFAULT_PAGE_SIZE, 1), max_page_size)
    sort_by = params.sort_by or 'date'
    sort_order = params.sort_order or 'desc'

    query = _apply_filters(Transaction.query.filter(Transaction.user_id == user_id), params)
    total = query.count()

    column = SORT_COLUMNS[sort_by]
    if sort_order == 'asc':
        query = query.order_by(column.asc(), Transaction.id.asc())
    else:
        query = query.order_by(column.desc(), Transaction.id.desc())
    rows = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        'data': [t.to_dict() for t in rows],
        'total': total,
        'page': page,
        'pageSize': page_size,
        'totalPages': math.ceil(total / page_size),
    }
