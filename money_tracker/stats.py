"""Statistici calculate din cicluri, cheltuieli si sarcini fixe (doar citire)."""
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from . import db
from . import ledger
from .models import Category, Expense
from .charges import active_charges_total
from .expenses import recent_expenses
from .errors import store_failure
from .utils import MONTH_NAMES, percentage, to_decimal


def _variation(current, previous):
    """Variatia procentuala fata de valoarea anterioara.

    Intoarce 0 cand valoarea anterioara este 0 (sau negativa): "fara baza de
    comparatie" nu se distinge de "fara schimbare".
    """
    current, previous = to_decimal(current), to_decimal(previous)
    if previous <= 0:
        return 0.0
    return round(float((current - previous) / previous * 100), 2)


def monthly_summary(cycle_id, user_id=None, today=None):
    cycle = ledger.get_cycle(cycle_id, user_id)
    today = today or date.today()

    income = to_decimal(cycle.income)
    total_charges = to_decimal(cycle.total_charges)
    total_depenses = to_decimal(cycle.total_depenses)
    reste = to_decimal(cycle.reste)

    # zilele scurse includ ziua curenta; dupa sfarsitul lunii raman plafonate
    total_days = (cycle.period_end - cycle.period_start).days + 1
    elapsed = min(total_days, max(0, (today - cycle.period_start).days + 1))
    remaining = max(0, total_days - elapsed)

    per_day = to_decimal(total_depenses / elapsed) if elapsed > 0 else Decimal('0.00')
    daily_remaining = to_decimal(reste / remaining) if remaining > 0 else reste

    return {
        'cycle_id': cycle.id,
        'currency': cycle.currency,
        'salaire': income,
        'total_charges': total_charges,
        'total_depenses': total_depenses,
        'reste': reste,
        'pourcentage_utilise': percentage(total_charges + total_depenses, income),
        'taux_epargne': percentage(reste, income),
        'depassement': total_charges + total_depenses > income,
        'jours_total': total_days,
        'jours_ecoules': elapsed,
        'jours_restants': remaining,
        'depenses_par_jour': per_day,
        'budget_journalier_restant': daily_remaining,
    }


def category_breakdown(cycle_id, user_id=None):
    """Cheltuielile ciclului grupate pe categorii, descrescator dupa total.

    Categoriile fara cheltuieli nu apar in rezultat.
    """
    cycle = ledger.get_cycle(cycle_id, user_id)
    try:
        rows = db.session.query(
            Category,
            func.sum(Expense.amount).label('total'),
            func.count(Expense.id).label('nombre')
        ).join(Expense, Expense.category_id == Category.id).filter(
            Expense.cycle_id == cycle.id
        ).group_by(Category.id).all()
    except SQLAlchemyError as e:
        raise store_failure(f'gruparea cheltuielilor ciclului #{cycle_id}', e) from e

    groups = [(category, to_decimal(total or 0), nombre) for category, total, nombre in rows]
    grand_total = sum((total for _, total, _ in groups), Decimal('0'))

    result = []
    for category, total, nombre in groups:
        budget_max = to_decimal(category.budget_max) if category.budget_max is not None else None
        result.append({
            'category_id': category.id,
            'category_name': category.name,
            'category_color': category.color,
            'category_icon': category.icon,
            'total': total,
            'nombre': nombre,
            'pourcentage': percentage(total, grand_total),
            'budget_max': budget_max,
            'exceeded': bool(budget_max) and total > budget_max,
        })

    result.sort(key=lambda g: (-g['total'], g['category_name']))
    return result


def top_categories(cycle_id, user_id=None, limit=5):
    return category_breakdown(cycle_id, user_id)[:limit]


def compare_cycles(cycle_id, previous_cycle_id, user_id=None):
    """Comparatia lunii curente cu o luna anterioara"""
    current = ledger.get_cycle(cycle_id, user_id)
    previous = ledger.get_cycle(previous_cycle_id, user_id)
    threshold = current_app.config.get('COMPARISON_THRESHOLD', 5)

    previous_by_category = {g['category_id']: g for g in category_breakdown(previous.id)}
    rising, falling = [], []
    for group in category_breakdown(current.id):
        before = previous_by_category.get(group['category_id'])
        if before is None:
            continue
        variation = _variation(group['total'], before['total'])
        entry = {'category_id': group['category_id'], 'category_name': group['category_name']}
        if variation > threshold:
            rising.append(dict(entry, variation=variation))
        elif variation < -threshold:
            falling.append(dict(entry, variation=abs(variation)))

    rising.sort(key=lambda c: c['variation'], reverse=True)
    falling.sort(key=lambda c: c['variation'], reverse=True)

    return {
        'cycle_actuel': current.to_dict(),
        'cycle_precedent': previous.to_dict(),
        'variation_depenses': _variation(current.total_depenses, previous.total_depenses),
        'variation_reste': _variation(current.reste, previous.reste),
        'categories_en_hausse': rising,
        'categories_en_baisse': falling,
    }


def evolution(user_id, months=None):
    """Ultimele N cicluri, in ordine cronologica (cel mai vechi primul)"""
    months = months or current_app.config.get('EVOLUTION_DEFAULT_MONTHS', 6)
    cycles = ledger.list_cycles(user_id, limit=months)

    series = [{
        'cycle_id': cycle.id,
        'mois': MONTH_NAMES[cycle.month - 1],
        'month': cycle.month,
        'annee': cycle.year,
        'total_charges': cycle.total_charges,
        'total_depenses': cycle.total_depenses,
        'reste': cycle.reste,
    } for cycle in cycles]
    series.reverse()
    return series


def dashboard(user_id):
    """Ciclul activ cu sarcinile active, ultimele cheltuieli si gruparea pe categorii"""
    cycle = ledger.get_active_cycle(user_id)
    if cycle is None:
        return {
            'cycle': None,
            'total_charges_actives': Decimal('0.00'),
            'recent_expenses': [],
            'categories': [],
        }

    limit = current_app.config.get('RECENT_EXPENSES_LIMIT', 5)
    return {
        'cycle': cycle.to_dict(),
        'total_charges_actives': active_charges_total(user_id),
        'recent_expenses': [e.to_dict() for e in recent_expenses(cycle.id, limit)],
        'categories': category_breakdown(cycle.id),
    }
