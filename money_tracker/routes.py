from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user, login_user, logout_user
from werkzeug.datastructures import MultiDict
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from datetime import date

from . import db, limiter
from .models import User
from .forms import (LoginForm, RegistrationForm, CycleForm, CycleUpdateForm, CloseCycleForm,
                    ExpenseForm, ChargeForm, CategoryForm, IncomeForm)
from .errors import ValidationError, problem, store_failure
from .utils import parse_bool
from . import ledger, expenses, charges, categories, incomes, stats

api_bp = Blueprint('api', __name__)


def _payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _formdata(payload):
    """Corpul JSON ca MultiDict pentru WTForms; valorile null sunt omise"""
    formdata = MultiDict()
    for key, value in payload.items():
        if value is None:
            continue
        for item in (value if isinstance(value, list) else [value]):
            if isinstance(item, bool):
                item = 'y' if item else 'false'
            formdata.add(key, str(item))
    return formdata


def _validated(form_class):
    payload = _payload()
    form = form_class(formdata=_formdata(payload))
    if not form.validate_on_submit():
        raise ValidationError('Datele trimise nu sunt valide.', form.errors)
    return form, payload


def _validated_fields(form_class):
    """Validare PATCH: doar campurile trimise; intoarce dictionarul de actualizat"""
    payload = _payload()
    form = form_class(formdata=_formdata(payload))
    names = [name for name in payload if name in form._fields]
    if not names:
        raise ValidationError('Niciun câmp de actualizat.')
    if not form.validate_partial(names):
        raise ValidationError('Datele trimise nu sunt valide.', form.errors)
    fields = form.data_for(names)
    # null explicit inseamna stergerea valorii
    fields.update({name: None for name in names if payload[name] is None})
    return fields


def _date_arg(name):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f'Data {value!r} nu este validă (format AAAA-LL-ZZ).',
                              {name: ['Format așteptat: AAAA-LL-ZZ.']})


# Rutele pentru autentificare și înregistrare
@api_bp.route('/register', methods=['POST'])
@limiter.limit("3 per minute") # Limitare pentru înregistrări
def register():
    form, _ = _validated(RegistrationForm)
    user = User(
        email=form.email.data,
        username=form.username.data,
        password=generate_password_hash(form.password.data)
    )
    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        current_app.logger.warning(f"Înregistrare duplicată pentru {form.email.data}: {str(e)}")
        raise ValidationError('Această adresă de email sau acest nume de utilizator este deja utilizat.') from e
    except SQLAlchemyError as e:
        raise store_failure(f'înregistrarea utilizatorului {form.email.data}', e) from e
    current_app.logger.info(f"Utilizatorul #{user.id} a fost creat")
    return jsonify(user.to_dict()), 201


@api_bp.route('/login', methods=['POST'])
@limiter.limit("5 per minute") # Protecție împotriva atacurilor de tip brute-force
def login():
    form, _ = _validated(LoginForm)
    # Convertim identificatorul la lowercase pentru comparație case-insensitivă
    identifier = form.identifier.data.strip().lower()
    user = User.query.filter(or_(User.email == identifier, User.username == identifier)).first()

    if user is None or not check_password_hash(user.password, form.password.data):
        current_app.logger.warning(f"Autentificare eșuată pentru '{identifier}'")
        return problem(401, 'Unauthorized', 'Email, nume utilizator sau parolă incorectă.')
    login_user(user)
    return jsonify(user.to_dict())


@api_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return '', 204


# Cicluri lunare
@api_bp.route('/cycles', methods=['GET'])
@login_required
def list_cycles():
    limit = request.args.get('limit', type=int)
    return jsonify([c.to_dict() for c in ledger.list_cycles(current_user.id, limit)])


@api_bp.route('/cycles', methods=['POST'])
@login_required
def create_cycle():
    form, _ = _validated(CycleForm)
    # valorile lipsa sunt luate din veniturile recurente si sarcinile active
    income = form.income.data
    if income is None:
        income = incomes.recurring_income_total(current_user.id)
    initial_charges = form.initial_charges.data
    if initial_charges is None:
        initial_charges = charges.active_charges_total(current_user.id)

    cycle = ledger.create_cycle(
        current_user.id,
        income,
        form.year.data,
        form.month.data,
        initial_charges,
        form.currency.data or None,
        form.notes.data or None,
    )
    return jsonify(cycle.to_dict()), 201


@api_bp.route('/cycles/active', methods=['GET'])
@login_required
def active_cycle():
    cycle = ledger.get_active_cycle(current_user.id)
    return jsonify(cycle.to_dict() if cycle else None)


@api_bp.route('/cycles/<int:cycle_id>', methods=['GET'])
@login_required
def get_cycle(cycle_id):
    return jsonify(ledger.get_cycle(cycle_id, current_user.id).to_dict())


@api_bp.route('/cycles/<int:cycle_id>', methods=['PATCH'])
@login_required
def update_cycle(cycle_id):
    payload = _payload()
    # reste si status nu sunt campuri ale formularului, serviciul le respinge explicit
    blocked = {name: payload[name] for name in ('reste', 'status') if name in payload}
    if blocked:
        return jsonify(ledger.update_cycle(cycle_id, current_user.id, **blocked).to_dict())
    fields = _validated_fields(CycleUpdateForm)
    return jsonify(ledger.update_cycle(cycle_id, current_user.id, **fields).to_dict())


@api_bp.route('/cycles/<int:cycle_id>', methods=['DELETE'])
@login_required
def delete_cycle(cycle_id):
    ledger.delete_cycle(cycle_id, current_user.id)
    return '', 204


@api_bp.route('/cycles/<int:cycle_id>/close', methods=['POST'])
@login_required
def close_cycle(cycle_id):
    form, _ = _validated(CloseCycleForm)
    if form.rollover.data:
        closed, next_cycle = ledger.close_and_rollover(
            cycle_id, form.income.data, form.currency.data or None, current_user.id)
        current_app.logger.info(f"Ciclul #{closed.id} a fost închis, ciclul #{next_cycle.id} a fost deschis")
        return jsonify({'cycle': closed.to_dict(), 'next_cycle': next_cycle.to_dict()})
    closed = ledger.close_cycle(cycle_id, current_user.id)
    return jsonify({'cycle': closed.to_dict(), 'next_cycle': None})


@api_bp.route('/cycles/<int:cycle_id>/recompute', methods=['POST'])
@login_required
def recompute_cycle(cycle_id):
    cycle = ledger.get_cycle(cycle_id, current_user.id)
    return jsonify(ledger.recompute_expense_aggregate(cycle.id).to_dict())


# Cheltuieli
@api_bp.route('/cycles/<int:cycle_id>/expenses', methods=['GET'])
@login_required
def list_expenses(cycle_id):
    cycle = ledger.get_cycle(cycle_id, current_user.id)
    items = expenses.list_expenses(
        cycle.id,
        category_id=request.args.get('category_id', type=int),
        start=_date_arg('start'),
        end=_date_arg('end'),
        search=request.args.get('q'),
        limit=request.args.get('limit', type=int),
    )
    return jsonify([e.to_dict() for e in items])


@api_bp.route('/cycles/<int:cycle_id>/expenses', methods=['POST'])
@login_required
def create_expense(cycle_id):
    form, _ = _validated(ExpenseForm)
    expense = expenses.create_expense(
        current_user.id,
        cycle_id,
        form.amount.data,
        form.category_id.data,
        form.date.data,
        form.description.data,
        form.tags.data,
    )
    return jsonify(expense.to_dict()), 201


@api_bp.route('/expenses/<int:expense_id>', methods=['PATCH'])
@login_required
def update_expense(expense_id):
    fields = _validated_fields(ExpenseForm)
    return jsonify(expenses.update_expense(expense_id, current_user.id, **fields).to_dict())


@api_bp.route('/expenses/<int:expense_id>', methods=['DELETE'])
@login_required
def delete_expense(expense_id):
    cycle = expenses.delete_expense(expense_id, current_user.id)
    return jsonify({'deleted': expense_id, 'cycle': cycle.to_dict()})


# Sarcini fixe
@api_bp.route('/charges', methods=['GET'])
@login_required
def list_charges():
    active_only = parse_bool(request.args.get('active')) or False
    return jsonify([c.to_dict() for c in charges.list_charges(current_user.id, active_only)])


@api_bp.route('/charges/total', methods=['GET'])
@login_required
def charges_total():
    return jsonify({'total': charges.active_charges_total(current_user.id)})


@api_bp.route('/charges', methods=['POST'])
@login_required
def create_charge():
    form, payload = _validated(ChargeForm)
    charge = charges.create_charge(
        current_user.id,
        form.name.data.strip(),
        form.amount.data,
        form.category_id.data,
        form.debit_day.data,
        # BooleanField da False pentru o cheie lipsa
        form.active.data if 'active' in payload else True,
    )
    return jsonify(charge.to_dict()), 201


@api_bp.route('/charges/<int:charge_id>', methods=['PATCH'])
@login_required
def update_charge(charge_id):
    fields = _validated_fields(ChargeForm)
    return jsonify(charges.update_charge(charge_id, current_user.id, **fields).to_dict())


@api_bp.route('/charges/<int:charge_id>/toggle', methods=['POST'])
@login_required
def toggle_charge(charge_id):
    active = parse_bool(_payload().get('active'))
    if active is None:
        # fara valoare explicita starea este inversata
        active = not charges.get_charge(charge_id, current_user.id).active
    return jsonify(charges.toggle_charge(charge_id, active, current_user.id).to_dict())


@api_bp.route('/charges/<int:charge_id>', methods=['DELETE'])
@login_required
def delete_charge(charge_id):
    charges.delete_charge(charge_id, current_user.id)
    return '', 204


# Categorii
@api_bp.route('/categories', methods=['GET'])
@login_required
def list_categories():
    scope = request.args.get('scope')
    if scope == 'default':
        items = categories.list_default_categories()
    elif scope == 'user':
        items = categories.list_user_categories(current_user.id)
    else:
        items = categories.list_categories(current_user.id, request.args.get('type') or None)
    return jsonify([c.to_dict() for c in items])


@api_bp.route('/categories', methods=['POST'])
@login_required
def create_category():
    form, _ = _validated(CategoryForm)
    category = categories.create_category(
        current_user.id,
        form.name.data,
        form.type.data,
        form.icon.data or None,
        form.color.data or None,
        form.budget_max.data,
    )
    return jsonify(category.to_dict()), 201


@api_bp.route('/categories/<int:category_id>', methods=['PATCH'])
@login_required
def update_category(category_id):
    fields = _validated_fields(CategoryForm)
    return jsonify(categories.update_category(category_id, current_user.id, **fields).to_dict())


@api_bp.route('/categories/<int:category_id>', methods=['DELETE'])
@login_required
def delete_category(category_id):
    categories.delete_category(category_id, current_user.id)
    return '', 204


# Venituri
@api_bp.route('/incomes', methods=['GET'])
@login_required
def list_incomes():
    if parse_bool(request.args.get('active')):
        items = incomes.list_active_incomes(current_user.id)
    elif parse_bool(request.args.get('recurrent')):
        items = incomes.list_recurrent_incomes(current_user.id)
    else:
        items = incomes.list_incomes(current_user.id)
    return jsonify([i.to_dict() for i in items])


@api_bp.route('/incomes', methods=['POST'])
@login_required
def create_income():
    form, payload = _validated(IncomeForm)
    income = incomes.create_income(
        current_user.id,
        form.name.data.strip(),
        form.amount.data,
        form.recurrent.data if 'recurrent' in payload else True,
        form.start_date.data,
        form.end_date.data,
    )
    return jsonify(income.to_dict()), 201


@api_bp.route('/incomes/<int:income_id>', methods=['PATCH'])
@login_required
def update_income(income_id):
    fields = _validated_fields(IncomeForm)
    return jsonify(incomes.update_income(income_id, current_user.id, **fields).to_dict())


@api_bp.route('/incomes/<int:income_id>', methods=['DELETE'])
@login_required
def delete_income(income_id):
    incomes.delete_income(income_id, current_user.id)
    return '', 204


# Statistici
@api_bp.route('/cycles/<int:cycle_id>/stats', methods=['GET'])
@login_required
def cycle_stats(cycle_id):
    return jsonify(stats.monthly_summary(cycle_id, current_user.id))


@api_bp.route('/cycles/<int:cycle_id>/categories', methods=['GET'])
@login_required
def cycle_categories(cycle_id):
    limit = request.args.get('limit', type=int)
    if limit:
        return jsonify(stats.top_categories(cycle_id, current_user.id, limit))
    return jsonify(stats.category_breakdown(cycle_id, current_user.id))


@api_bp.route('/cycles/<int:cycle_id>/compare/<int:previous_id>', methods=['GET'])
@login_required
def compare_cycles(cycle_id, previous_id):
    return jsonify(stats.compare_cycles(cycle_id, previous_id, current_user.id))


@api_bp.route('/stats/evolution', methods=['GET'])
@login_required
def evolution():
    months = request.args.get('months', type=int)
    return jsonify(stats.evolution(current_user.id, months))


@api_bp.route('/dashboard', methods=['GET'])
@login_required
def dashboard():
    return jsonify(stats.dashboard(current_user.id))
