import structlog
from flask import Blueprint, current_app, jsonify, request

from . import auth
from .dashboard import build_dashboard
from .errors import Conflict, NotFound, ReferentialBlock, ValidationFailed
from .ledger import account_balance, count_account_transactions, list_accounts, list_transactions
from .models import Account, Category, Transaction, User, db
from .validators import (
    AccountIn,
    CategoryIn,
    CategoryQuery,
    ForgotPasswordIn,
    LoginIn,
    RegisterIn,
    ResetPasswordIn,
    TransactionIn,
    TransactionQuery,
    parse_payload,
)

log = structlog.get_logger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


def _body():
    return request.get_json(silent=True)


def _owned(model, object_id, user_id):
    """Fetch a row the caller owns; someone else's row is reported as missing."""
    obj = model.query.filter_by(id=object_id, user_id=user_id).first()
    if obj is None:
        raise NotFound()
    return obj


# ---------------------- Routes: Auth ----------------------
@api.route('/auth/register', methods=['POST'])
def register():
    data = parse_payload(RegisterIn, _body())
    user = auth.register_user(data)
    return jsonify({'user': user.summary()}), 201


@api.route('/auth/login', methods=['POST'])
def login():
    data = parse_payload(LoginIn, _body())
    user = auth.authenticate(data.email, data.password)
    auth.login(user)
    return jsonify({'user': user.summary()})


@api.route('/auth/logout', methods=['POST'])
def logout():
    auth.logout()
    return jsonify({'success': True})


@api.route('/auth/me')
@auth.login_required
def me(user_id):
    return jsonify({'user': db.session.get(User, user_id).summary()})


@api.route('/auth/forgot-password', methods=['POST'])
def forgot_password():
    data = parse_payload(ForgotPasswordIn, _body())
    auth.request_password_reset(data.email, current_app.extensions['mailer'])
    return jsonify({'message': auth.RESET_REQUESTED_MESSAGE})


@api.route('/auth/reset-password', methods=['POST'])
def reset_password():
    data = parse_payload(ResetPasswordIn, _body())
    auth.reset_password(data.token, data.password)
    return jsonify({'message': 'Password reset successful'})


# ---------------------- Routes: Accounts ----------------------
def _check_account_name(user_id, name, exclude_id=None):
    q = Account.query.filter_by(user_id=user_id, name=name)
    if exclude_id is not None:
        q = q.filter(Account.id != exclude_id)
    if q.first():
        raise Conflict('Account with this name already exists')


@api.route('/accounts')
@auth.login_required
def accounts_index(user_id):
    return jsonify(list_accounts(user_id))


@api.route('/accounts', methods=['POST'])
@auth.login_required
def accounts_create(user_id):
    data = parse_payload(AccountIn, _body())
    _check_account_name(user_id, data.name)
    account = Account(user_id=user_id, name=data.name, type=data.type, initial_balance=data.initial_balance)
    db.session.add(account)
    db.session.commit()
    return jsonify(account.to_dict(account.initial_balance)), 201


@api.route('/accounts/<int:account_id>')
@auth.login_required
def accounts_show(account_id, user_id):
    account = _owned(Account, account_id, user_id)
    return jsonify(account.to_dict(account_balance(account)))


@api.route('/accounts/<int:account_id>', methods=['PUT'])
@auth.login_required
def accounts_update(account_id, user_id):
    account = _owned(Account, account_id, user_id)
    data = parse_payload(AccountIn, _body())
    _check_account_name(user_id, data.name, exclude_id=account.id)
    account.name = data.name
    account.type = data.type
    account.initial_balance = data.initial_balance
    db.session.commit()
    return jsonify(account.to_dict(account_balance(account)))


@api.route('/accounts/<int:account_id>', methods=['DELETE'])
@auth.login_required
def accounts_delete(account_id, user_id):
    account = _owned(Account, account_id, user_id)
    linked = count_account_transactions(account)
    if linked > 0:
        raise ReferentialBlock(linked)
    db.session.delete(account)
    db.session.commit()
    log.info('account_deleted', user_id=user_id, account_id=account_id)
    return jsonify({'success': True})


# ---------------------- Routes: Categories ----------------------
@api.route('/categories')
@auth.login_required
def categories_index(user_id):
    params = parse_payload(CategoryQuery, request.args.to_dict())
    q = Category.query.filter_by(user_id=user_id)
    if params.type:
        q = q.filter(Category.type == params.type)
    categories = q.order_by(Category.name.asc()).all()
    return jsonify([c.to_dict() for c in categories])


@api.route('/categories', methods=['POST'])
@auth.login_required
def categories_create(user_id):
    data = parse_payload(CategoryIn, _body())
    if Category.query.filter_by(user_id=user_id, name=data.name).first():
        raise Conflict('Category with this name already exists')
    category = Category(user_id=user_id, name=data.name, type=data.type, color=data.color, icon=data.icon)
    db.session.add(category)
    db.session.commit()
    return jsonify(category.to_dict()), 201


# ---------------------- Routes: Transactions ----------------------
def _check_links(data, user_id):
    """Category (and account, when given) must belong to the caller and match the entry type."""
    category = Category.query.filter_by(id=data.category_id, user_id=user_id).first()
    if category is None:
        raise ValidationFailed('Category not found', field='categoryId')
    if category.type != data.type:
        raise ValidationFailed('Category type does not match transaction type', field='categoryId')
    if data.account_id is not None:
        if Account.query.filter_by(id=data.account_id, user_id=user_id).first() is None:
            raise ValidationFailed('Account not found', field='accountId')


def _apply(txn, data):
    txn.amount = data.amount
    txn.date = data.txn_date
    txn.description = data.description
    txn.type = data.type
    txn.category_id = data.category_id
    txn.account_id = data.account_id
    txn.notes = data.notes


@api.route('/transactions')
@auth.login_required
def transactions_index(user_id):
    params = parse_payload(TransactionQuery, request.args.to_dict())
    return jsonify(list_transactions(user_id, params, current_app.config['MAX_PAGE_SIZE']))


@api.route('/transactions', methods=['POST'])
@auth.login_required
def transactions_create(user_id):
    data = parse_payload(TransactionIn, _body())
    _check_links(data, user_id)
    txn = Transaction(user_id=user_id)
    _apply(txn, data)
    db.session.add(txn)
    db.session.commit()
    return jsonify(txn.to_dict()), 201


@api.route('/transactions/<int:txn_id>')
@auth.login_required
def transactions_show(txn_id, user_id):
    return jsonify(_owned(Transaction, txn_id, user_id).to_dict())


@api.route('/transactions/<int:txn_id>', methods=['PUT'])
@auth.login_required
def transactions_update(txn_id, user_id):
    txn = _owned(Transaction, txn_id, user_id)
    data = parse_payload(TransactionIn, _body())
    _check_links(data, user_id)
    _apply(txn, data)
    db.session.commit()
    return jsonify(txn.to_dict())


@api.route('/transactions/<int:txn_id>', methods=['DELETE'])
@auth.login_required
def transactions_delete(txn_id, user_id):
    txn = _owned(Transaction, txn_id, user_id)
    db.session.delete(txn)
    db.session.commit()
    return jsonify({'success': True})


# ---------------------- Routes: Dashboard ----------------------
@api.route('/dashboard')
@auth.login_required
def dashboard(user_id):
    return jsonify(build_dashboard(user_id, pool=current_app.extensions['trend_pool']))
