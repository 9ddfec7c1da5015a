"""Registrul ciclurilor lunare.

Deschiderea unui ciclu, intretinerea totalurilor denormalizate (total_charges,
total_depenses, reste) si inchiderea ciclului. Dupa orice modificare a
venitului, sarcinilor sau cheltuielilor:

    reste = income - total_charges - total_depenses

Un ciclu inchis este final: totalurile lui nu mai sunt recalculate.
"""
from datetime import datetime, MINYEAR, MAXYEAR
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from . import db
from .models import Cycle, CycleStatus, Currency, Expense
from .charges import active_charges_total
from .errors import NotFoundError, DuplicateCycleError, ValidationError, CycleClosedError, StoreError, store_failure
from .utils import to_decimal, next_month

AGGREGATE_FIELDS = ('income', 'total_charges', 'total_depenses')
UPDATABLE_FIELDS = AGGREGATE_FIELDS + ('currency', 'notes')


def get_cycle(cycle_id, user_id=None):
    """Ciclul cu id-ul dat; un ciclu al altui utilizator este raportat ca inexistent"""
    try:
        cycle = db.session.get(Cycle, cycle_id)
    except SQLAlchemyError as e:
        raise store_failure(f'citirea ciclului #{cycle_id}', e) from e
    if cycle is None or (user_id is not None and cycle.user_id != user_id):
        raise NotFoundError(f'Ciclul #{cycle_id} nu există.')
    return cycle


def get_active_cycle(user_id):
    try:
        return Cycle.query.filter_by(user_id=user_id, status=CycleStatus.ACTIVE.value).first()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea ciclului activ pentru utilizatorul #{user_id}', e) from e


def list_cycles(user_id, limit=None):
    # cele mai recente primele
    try:
        query = Cycle.query.filter_by(user_id=user_id).order_by(Cycle.year.desc(), Cycle.month.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()
    except SQLAlchemyError as e:
        raise store_failure(f'citirea ciclurilor pentru utilizatorul #{user_id}', e) from e


def expenses_total(cycle_id) -> Decimal:
    try:
        total = db.session.query(func.sum(Expense.amount)).filter(
            Expense.cycle_id == cycle_id
        ).scalar()
    except SQLAlchemyError as e:
        raise store_failure(f'calculul cheltuielilor ciclului #{cycle_id}', e) from e
    return to_decimal(total or 0)


def create_cycle(user_id, income, year, month, initial_charges_total=0, currency=None, notes=None):
    """Deschide ciclul pentru (an, luna) cu o fotografie a sarcinilor fixe.

    Ridica DuplicateCycleError daca exista deja un ciclu pentru aceeasi luna
    sau daca utilizatorul are deja un ciclu activ.
    """
    if not isinstance(year, int) or isinstance(year, bool) or not MINYEAR <= year <= MAXYEAR:
        raise ValidationError(f'Anul {year!r} nu este valid.',
                              {'year': [f'Anul trebuie să fie un număr întreg între {MINYEAR} și {MAXYEAR}.']})
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        raise ValidationError(f'Luna {month!r} nu este validă.', {'month': ['Luna trebuie să fie între 1 și 12.']})
    currency = Currency.parse(currency or current_app.config.get('DEFAULT_CURRENCY', 'EUR'))

    try:
        existing = Cycle.query.filter_by(user_id=user_id, year=year, month=month).first()
        active = get_active_cycle(user_id) if existing is None else None
    except SQLAlchemyError as e:
        raise store_failure(f'verificarea ciclurilor pentru utilizatorul #{user_id}', e) from e
    if existing is not None:
        raise DuplicateCycleError(f'Un ciclu pentru {month:02d}/{year} există deja.')
    if active is not None:
        raise DuplicateCycleError(
            f'Există deja un ciclu activ ({active.month:02d}/{active.year}). Închide-l înainte de a deschide altul.')

    cycle = Cycle(
        user_id=user_id,
        year=year,
        month=month,
        income=income,
        total_charges=initial_charges_total,
        total_depenses=0,
        status=CycleStatus.ACTIVE.value,
        currency=currency.value,
        notes=notes,
    )
    cycle.set_period()
    cycle.reste = cycle.compute_reste()

    try:
        db.session.add(cycle)
        db.session.commit()
    except IntegrityError as e:
        # doua cereri concurente pentru aceeasi luna
        db.session.rollback()
        current_app.logger.warning(f"Ciclu duplicat pentru utilizatorul #{user_id} ({month:02d}/{year}): {str(e)}")
        raise DuplicateCycleError(f'Un ciclu pentru {month:02d}/{year} există deja.') from e
    except SQLAlchemyError as e:
        raise store_failure(f'crearea ciclului {month:02d}/{year} pentru utilizatorul #{user_id}', e) from e

    current_app.logger.info(f"Ciclul #{cycle.id} ({month:02d}/{year}) a fost deschis pentru utilizatorul #{user_id}")
    return cycle


def update_cycle(cycle_id, user_id=None, **fields):
    """Actualizare partiala; reste se recalculeaza din valorile rezultate.

    Apelantul nu trimite reste: acesta este mereu derivat.
    """
    if 'reste' in fields or 'status' in fields:
        raise ValidationError('Câmpurile reste și status nu pot fi modificate direct.',
                              {k: ['Câmp calculat.'] for k in ('reste', 'status') if k in fields})
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Câmpuri necunoscute: {', '.join(sorted(unknown))}.")

    cycle = get_cycle(cycle_id, user_id)
    touches_totals = any(name in fields for name in AGGREGATE_FIELDS)
    if touches_totals and cycle.is_closed:
        raise CycleClosedError(f'Ciclul #{cycle_id} este închis; totalurile nu mai pot fi modificate.')

    try:
        for key, value in fields.items():
            setattr(cycle, key, value)
        if touches_totals:
            cycle.reste = cycle.compute_reste()
        cycle.updated_at = datetime.utcnow()
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        raise store_failure(f'actualizarea ciclului #{cycle_id}', e) from e
    return cycle


def recompute_expense_aggregate(cycle_id):
    """Recalculeaza total_depenses si reste din cheltuielile existente.

    Functie pura de randurile curente, deci poate fi reluata oricand. Scrierea
    verifica versiunea ciclului; la un conflict se reciteste si se reincearca.
    """
    retries = max(1, current_app.config.get('LEDGER_RECOMPUTE_RETRIES', 3))
    for attempt in range(1, retries + 1):
        try:
            cycle = db.session.get(Cycle, cycle_id, populate_existing=True)
            if cycle is None:
                raise NotFoundError(f'Ciclul #{cycle_id} nu există.')
            if cycle.is_closed:
                current_app.logger.info(f"Ciclul #{cycle_id} este închis, totalurile rămân înghețate")
                return cycle

            cycle.total_depenses = expenses_total(cycle_id)
            cycle.reste = cycle.compute_reste()
            cycle.updated_at = datetime.utcnow()
            db.session.commit()
            return cycle
        except StaleDataError:
            db.session.rollback()
            current_app.logger.warning(
                f"Conflict de versiune la recalcularea ciclului #{cycle_id} (încercarea {attempt}/{retries})")
        except SQLAlchemyError as e:
            raise store_failure(f'recalcularea totalurilor ciclului #{cycle_id}', e) from e

    current_app.logger.error(f"Totalurile ciclului #{cycle_id} nu au putut fi recalculate după {retries} încercări")
    raise StoreError(f'Totalurile ciclului #{cycle_id} nu au putut fi recalculate.')


def close_cycle(cycle_id, user_id=None):
    """Inchide ciclul activ si ingheata totalurile.

    total_charges este recitit din sarcinile fixe active in acest moment (nu
    fotografia de la deschidere). Totul se scrie intr-un singur commit.
    """
    cycle = get_cycle(cycle_id, user_id)
    if cycle.is_closed:
        raise CycleClosedError(f'Ciclul #{cycle_id} este deja închis.')

    total_charges = active_charges_total(cycle.user_id)

    try:
        cycle.total_charges = total_charges
        cycle.reste = cycle.compute_reste()
        cycle.status = CycleStatus.CLOSED.value
        cycle.updated_at = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'închiderea ciclului #{cycle_id}', e) from e

    current_app.logger.info(
        f"Ciclul #{cycle.id} ({cycle.month:02d}/{cycle.year}) a fost închis: "
        f"sarcini={cycle.total_charges}, cheltuieli={cycle.total_depenses}, rest={cycle.reste}")
    return cycle


def close_and_rollover(cycle_id, income=None, currency=None, user_id=None):
    """Inchide ciclul si deschide ciclul lunii urmatoare.

    Venitul si moneda implicite sunt cele ale ciclului inchis; sarcinile sunt
    totalul activ din acest moment. Inchiderea ramane valida chiar daca
    deschiderea lunii urmatoare esueaza.
    """
    closed = close_cycle(cycle_id, user_id)
    year, month = next_month(closed.year, closed.month)
    next_cycle = create_cycle(
        closed.user_id,
        income if income is not None else closed.income,
        year,
        month,
        active_charges_total(closed.user_id),
        currency or closed.currency,
    )
    return closed, next_cycle


def delete_cycle(cycle_id, user_id=None):
    # sterge si cheltuielile ciclului
    cycle = get_cycle(cycle_id, user_id)
    try:
        Expense.query.filter_by(cycle_id=cycle.id).delete()
        db.session.delete(cycle)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'ștergerea ciclului #{cycle_id}', e) from e
    current_app.logger.info(f"Ciclul #{cycle_id} a fost șters")
