"""Sarcini fixe lunare (chirie, asigurari, abonamente).

Sarcinile nu sunt legate de un ciclu; totalul celor active este citit la
deschiderea ciclului si din nou la inchiderea lui.
"""
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .models import FixedCharge
from .categories import resolve_category
from .errors import NotFoundError, ValidationError, store_failure
from .utils import to_decimal

UPDATABLE_FIELDS = ('name', 'amount', 'category_id', 'debit_day', 'active')


def list_charges(user_id, active_only=False):
    try:
        query = FixedCharge.query.filter_by(user_id=user_id)
        if active_only:
            return query.filter_by(active=True).order_by(FixedCharge.debit_day.asc()).all()
        return query.order_by(FixedCharge.amount.desc()).all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea sarcinilor pentru utilizatorul #{user_id}', e) from e


def list_charges_by_category(user_id, category_id):
    try:
        return FixedCharge.query.filter_by(user_id=user_id, category_id=category_id).order_by(
            FixedCharge.amount.desc()).all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea sarcinilor pentru categoria #{category_id}', e) from e


def active_charges_total(user_id) -> Decimal:
    """Suma sarcinilor fixe active ale utilizatorului, citita din baza de date"""
    try:
        total = db.session.query(func.sum(FixedCharge.amount)).filter(
            FixedCharge.user_id == user_id,
            FixedCharge.active.is_(True)
        ).scalar()
    except SQLAlchemyError as e:
        raise store_failure(f'calculul sarcinilor active pentru utilizatorul #{user_id}', e) from e
    return to_decimal(total or 0)


def get_charge(charge_id, user_id=None):
    try:
        charge = db.session.get(FixedCharge, charge_id)
    except SQLAlchemyError as e:
        raise store_failure(f'citirea sarcinii #{charge_id}', e) from e
    if charge is None or (user_id is not None and charge.user_id != user_id):
        raise NotFoundError(f'Sarcina #{charge_id} nu există.')
    return charge


def create_charge(user_id, name, amount, category_id, debit_day=1, active=True):
    resolve_category(category_id, user_id, 'charge')
    charge = FixedCharge(
        user_id=user_id,
        name=name,
        amount=amount,
        category_id=category_id,
        debit_day=debit_day if debit_day is not None else 1,
        active=active,
    )
    try:
        db.session.add(charge)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'adăugarea sarcinii pentru utilizatorul #{user_id}', e) from e
    return charge


def update_charge(charge_id, user_id=None, **fields):
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Câmpuri necunoscute: {', '.join(sorted(unknown))}.")
    charge = get_charge(charge_id, user_id)
    if 'category_id' in fields:
        resolve_category(fields['category_id'], charge.user_id, 'charge')
    try:
        for key, value in fields.items():
            setattr(charge, key, value)
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        raise store_failure(f'actualizarea sarcinii #{charge_id}', e) from e
    return charge


def toggle_charge(charge_id, active, user_id=None):
    return update_charge(charge_id, user_id, active=bool(active))


def delete_charge(charge_id, user_id=None):
    # ciclurile inchise au totalul inghetat, stergerea nu le afecteaza
    charge = get_charge(charge_id, user_id)
    try:
        db.session.delete(charge)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'ștergerea sarcinii #{charge_id}', e) from e
