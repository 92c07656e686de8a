import calendar
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import structlog
from flask import current_app

from .ledger import as_decimal, signed_totals
from .models import EntryType, Transaction, db, money

log = structlog.get_logger(__name__)

MONTH_ABBR = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')
TREND_MONTHS = 6
RECENT_LIMIT = 5


# ---------------------- Date Helpers ----------------------
def month_bounds(year: int, month: int):
    """First and last day of a calendar month (inclusive)."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def trailing_months(today: date, count=TREND_MONTHS):
    """(year, month) pairs for the ``count`` months ending at ``today``'s, oldest first."""
    months = []
    year, month = today.year, today.month
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


# ---------------------- Queries ----------------------
def _totals(user_id, start=None, end=None):
    q = db.session.query(*signed_totals()).filter(Transaction.user_id == user_id)
    if start is not None:
        q = q.filter(Transaction.date >= start, Transaction.date <= end)
    row = q.one()
    return as_decimal(row.income), as_decimal(row.expense)


def category_breakdown(user_id, start, end):
    rows = (
        Transaction.query
        .filter(Transaction.user_id == user_id, Transaction.type == EntryType.EXPENSE)
        .filter(Transaction.date >= start, Transaction.date <= end)
        .order_by(Transaction.date.asc(), Transaction.id.asc())
        .all()
    )
    groups = {}
    for t in rows:
        entry = groups.get(t.category_id)
        if entry is None:
            groups[t.category_id] = {'name': t.category.name, 'value': t.amount, 'color': t.category.color}
        else:
            entry['value'] += t.amount
    return [{**g, 'value': money(g['value'])} for g in groups.values()]


def _trend_point(app, user_id, year, month):
    # runs on a worker thread: a fresh app context gives it its own session
    with app.app_context():
        start, end = month_bounds(year, month)
        income, expense = _totals(user_id, start, end)
    return {'month': MONTH_ABBR[month - 1], 'income': money(income), 'expenses': money(expense)}


def trend_pool(workers):
    """Executor shared by every dashboard request, or None to read months in turn."""
    if workers <= 1:
        return None
    return ThreadPoolExecutor(max_workers=min(workers, TREND_MONTHS), thread_name_prefix='trend')


def monthly_trend(user_id, today: date, pool=None):
    app = current_app._get_current_object()
    months = trailing_months(today)
    if pool is None:
        return [_trend_point(app, user_id, y, m) for y, m in months]
    # map() yields in submission order, so the trend stays oldest-first
    return list(pool.map(lambda ym: _trend_point(app, user_id, *ym), months))


def recent_transactions(user_id, limit=RECENT_LIMIT):
    rows = (
        Transaction.query
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .limit(limit)
        .all()
    )
    return [t.to_dict() for t in rows]


# ---------------------- Snapshot ----------------------
def build_dashboard(user_id, today: date = None, pool=None):
    """Aggregate snapshot of the user's finances as of ``today``.

    ``totalBalance`` is the plain ledger sum (income minus expenses over every
    transaction). Unlike the per-account balance it does not include account
    initial balances.
    """
    today = today or date.today()
    total_income, total_expense = _totals(user_id)

    start, end = month_bounds(today.year, today.month)
    month_income, month_expense = _totals(user_id, start, end)

    snapshot = {
        'totalBalance': money(total_income - total_expense),
        'monthIncome': money(month_income),
        'monthExpenses': money(month_expense),
        'monthNet': money(month_income - month_expense),
        'categoryBreakdown': category_breakdown(user_id, start, end),
        'monthlyTrend': monthly_trend(user_id, today, pool),
        'recentTransactions': recent_transactions(user_id),
    }
    log.debug('dashboard_built', user_id=user_id, month=f'{today:%Y-%m}')
    return snapshot
