"""Cheltuieli variabile ale unui ciclu.

Fiecare adaugare, modificare a sumei sau stergere declanseaza recalcularea
totalurilor ciclului. Recalcularea este best-effort: daca esueaza, cheltuiala
ramane salvata, eroarea este logata, iar obiectul intors este marcat
`totals_stale` pana la urmatoarea recalculare reusita.
"""
from datetime import date

from flask import current_app
from sqlalchemy import String, cast, or_
from sqlalchemy.exc import SQLAlchemyError

from . import db
from . import ledger
from .models import Expense
from .categories import resolve_category
from .errors import NotFoundError, ValidationError, CycleClosedError, LedgerError, store_failure

UPDATABLE_FIELDS = ('amount', 'category_id', 'date', 'description', 'tags')


def _ensure_editable(cycle):
    if cycle.is_closed and not current_app.config.get('ALLOW_CLOSED_CYCLE_EDITS', False):
        raise CycleClosedError(f'Ciclul #{cycle.id} este închis; cheltuielile nu mai pot fi modificate.')


def _refresh_cycle_totals(cycle_id):
    """Recalculare best-effort; intoarce False daca totalurile au ramas vechi"""
    try:
        ledger.recompute_expense_aggregate(cycle_id)
        return True
    except LedgerError as e:
        current_app.logger.error(
            f"Totalurile ciclului #{cycle_id} nu au fost actualizate după modificarea cheltuielilor: {e.message}")
        return False


def _escape_like(term):
    # % si _ din termenul cautat sunt caractere obisnuite, nu wildcard
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _cycle_query(cycle_id):
    return Expense.query.filter(Expense.cycle_id == cycle_id)


def list_expenses(cycle_id, category_id=None, start=None, end=None, search=None, limit=None):
    """Cheltuielile ciclului, cele mai noi primele, cu filtre optionale"""
    query = _cycle_query(cycle_id)
    if category_id is not None:
        query = query.filter(Expense.category_id == category_id)
    if start is not None:
        query = query.filter(Expense.date >= start)
    if end is not None:
        query = query.filter(Expense.date <= end)
    if search:
        term = _escape_like(search.strip())
        # descriere care contine termenul sau eticheta egala cu termenul
        query = query.filter(or_(
            Expense.description.ilike(f'%{term}%', escape='\\'),
            cast(Expense.tags, String).ilike(f'%"{term}"%', escape='\\'),
        ))
    query = query.order_by(Expense.date.desc(), Expense.id.desc())
    if limit is not None:
        query = query.limit(limit)
    try:
        return query.all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea cheltuielilor ciclului #{cycle_id}', e) from e


def list_expenses_by_category(cycle_id, category_id):
    return list_expenses(cycle_id, category_id=category_id)


def list_expenses_by_date_range(cycle_id, start, end):
    return list_expenses(cycle_id, start=start, end=end)


def search_expenses(cycle_id, term):
    return list_expenses(cycle_id, search=term)


def recent_expenses(cycle_id, limit=10):
    # ultimele cheltuieli introduse, dupa data crearii
    try:
        return _cycle_query(cycle_id).order_by(Expense.created_at.desc(), Expense.id.desc()).limit(limit).all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea cheltuielilor recente ale ciclului #{cycle_id}', e) from e


def get_expense(expense_id, user_id=None):
    try:
        expense = db.session.get(Expense, expense_id)
    except SQLAlchemyError as e:
        raise store_failure(f'citirea cheltuielii #{expense_id}', e) from e
    if expense is None or (user_id is not None and expense.user_id != user_id):
        raise NotFoundError(f'Cheltuiala #{expense_id} nu există.')
    return expense


def create_expense(user_id, cycle_id, amount, category_id, date=None, description=None, tags=None):
    cycle = ledger.get_cycle(cycle_id, user_id)
    _ensure_editable(cycle)
    resolve_category(category_id, user_id, 'expense')

    expense = Expense(
        user_id=user_id,
        cycle_id=cycle.id,
        amount=amount,
        category_id=category_id,
        date=date or _today(),
        description=description or None,
        tags=tags,
    )
    try:
        db.session.add(expense)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'adăugarea cheltuielii pentru utilizatorul #{user_id}', e) from e

    expense.totals_stale = not _refresh_cycle_totals(cycle.id)
    return expense


def update_expense(expense_id, user_id=None, **fields):
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Câmpuri necunoscute: {', '.join(sorted(unknown))}.")
    if 'date' in fields and fields['date'] is None:
        raise ValidationError('Data cheltuielii este obligatorie.', {'date': ['Valoare obligatorie.']})

    expense = get_expense(expense_id, user_id)
    _ensure_editable(expense.cycle)
    if 'category_id' in fields:
        resolve_category(fields['category_id'], expense.user_id, 'expense')

    try:
        for key, value in fields.items():
            setattr(expense, key, value)
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        raise store_failure(f'actualizarea cheltuielii #{expense_id}', e) from e

    # doar suma influenteaza totalurile ciclului
    expense.totals_stale = False
    if 'amount' in fields:
        expense.totals_stale = not _refresh_cycle_totals(expense.cycle_id)
    return expense


def delete_expense(expense_id, user_id=None):
    """Sterge cheltuiala; intoarce ciclul proprietar dupa recalcularea totalurilor"""
    expense = get_expense(expense_id, user_id)
    cycle = expense.cycle
    _ensure_editable(cycle)
    cycle_id = cycle.id

    try:
        db.session.delete(expense)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'ștergerea cheltuielii #{expense_id}', e) from e

    cycle.totals_stale = not _refresh_cycle_totals(cycle_id)
    return cycle


def _today():
    return date.today()
