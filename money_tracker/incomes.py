"""Surse de venit (salariu, prime, ajutoare)."""
from datetime import date
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .models import IncomeSource
from .errors import NotFoundError, ValidationError, store_failure
from .utils import to_decimal

UPDATABLE_FIELDS = ('name', 'amount', 'recurrent', 'start_date', 'end_date')


def _active_filter(today):
    # fara data de sfarsit sau cu data de sfarsit inca neatinsa
    return or_(IncomeSource.end_date.is_(None), IncomeSource.end_date >= today)


def list_incomes(user_id):
    try:
        return IncomeSource.query.filter_by(user_id=user_id).order_by(
            IncomeSource.created_at.desc(), IncomeSource.id.desc()).all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea veniturilor pentru utilizatorul #{user_id}', e) from e


def list_active_incomes(user_id, today=None):
    today = today or date.today()
    try:
        return IncomeSource.query.filter(
            IncomeSource.user_id == user_id,
            _active_filter(today)
        ).order_by(IncomeSource.amount.desc()).all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea veniturilor active pentru utilizatorul #{user_id}', e) from e


def list_recurrent_incomes(user_id):
    try:
        return IncomeSource.query.filter_by(user_id=user_id, recurrent=True).order_by(
            IncomeSource.amount.desc()).all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea veniturilor recurente pentru utilizatorul #{user_id}', e) from e


def recurring_income_total(user_id, today=None) -> Decimal:
    """Venitul lunar implicit: suma veniturilor recurente active"""
    incomes = [i for i in list_active_incomes(user_id, today) if i.recurrent]
    return to_decimal(sum((i.amount for i in incomes), Decimal('0')))


def get_income(income_id, user_id=None):
    try:
        income = db.session.get(IncomeSource, income_id)
    except SQLAlchemyError as e:
        raise store_failure(f'citirea venitului #{income_id}', e) from e
    if income is None or (user_id is not None and income.user_id != user_id):
        raise NotFoundError(f'Venitul #{income_id} nu există.')
    return income


def _check_dates(start_date, end_date):
    if end_date is not None and start_date is not None and end_date < start_date:
        raise ValidationError('Data de sfârșit trebuie să fie după data de început.',
                              {'end_date': ['Data de sfârșit trebuie să fie după data de început.']})


def create_income(user_id, name, amount, recurrent=True, start_date=None, end_date=None):
    start_date = start_date or date.today()
    _check_dates(start_date, end_date)
    income = IncomeSource(
        user_id=user_id,
        name=name,
        amount=amount,
        recurrent=recurrent,
        start_date=start_date,
        end_date=end_date,
    )
    try:
        db.session.add(income)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'adăugarea venitului pentru utilizatorul #{user_id}', e) from e
    return income


def update_income(income_id, user_id=None, **fields):
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Câmpuri necunoscute: {', '.join(sorted(unknown))}.")
    if 'start_date' in fields and fields['start_date'] is None:
        raise ValidationError('Data de început este obligatorie.', {'start_date': ['Valoare obligatorie.']})
    income = get_income(income_id, user_id)
    _check_dates(fields.get('start_date', income.start_date), fields.get('end_date', income.end_date))
    try:
        for key, value in fields.items():
            setattr(income, key, value)
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        raise store_failure(f'actualizarea venitului #{income_id}', e) from e
    return income


def delete_income(income_id, user_id=None):
    income = get_income(income_id, user_id)
    try:
        db.session.delete(income)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'ștergerea venitului #{income_id}', e) from e
