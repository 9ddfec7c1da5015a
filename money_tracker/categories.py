"""Categorii pentru sarcini fixe si cheltuieli.

Categoriile implicite (user_id NULL) sunt comune tuturor utilizatorilor si nu
pot fi modificate; categoriile proprii apartin unui singur utilizator.
"""
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .models import Category, CategoryType, Expense, FixedCharge
from .errors import NotFoundError, ValidationError, store_failure

UPDATABLE_FIELDS = ('name', 'icon', 'color', 'budget_max', 'type')


def _visible_to(user_id):
    # categoriile utilizatorului plus cele implicite
    return or_(Category.user_id == user_id, Category.user_id.is_(None))


def list_categories(user_id, type=None):
    try:
        query = Category.query.filter(_visible_to(user_id))
        if type is not None:
            query = query.filter(Category.type == CategoryType(type).value)
        return query.order_by(Category.type.asc(), Category.name.asc()).all()
    except ValueError:
        raise ValidationError(f'Tipul de categorie {type!r} nu este valid.')
    except SQLAlchemyError as e:
        raise store_failure('citirea categoriilor', e) from e


def list_default_categories():
    try:
        return Category.query.filter(Category.user_id.is_(None)).order_by(
            Category.type.asc(), Category.name.asc()).all()
    except SQLAlchemyError as e:
        raise store_failure('citirea categoriilor implicite', e) from e


def list_user_categories(user_id):
    try:
        return Category.query.filter_by(user_id=user_id).order_by(
            Category.type.asc(), Category.name.asc()).all()
    except SQLAlchemyError as e:
        raise store_failure('citirea categoriilor proprii', e) from e


def get_category(category_id, user_id=None):
    try:
        category = db.session.get(Category, category_id)
    except SQLAlchemyError as e:
        raise store_failure(f'citirea categoriei #{category_id}', e) from e
    if category is None or (user_id is not None and category.user_id not in (None, user_id)):
        raise NotFoundError(f'Categoria #{category_id} nu există.')
    return category


def resolve_category(category_id, user_id, expected_type):
    """Categoria referita de o cheltuiala sau sarcina: obligatorie, vizibila, de tipul potrivit"""
    if category_id is None:
        raise ValidationError('Trebuie să selectezi o categorie.',
                              {'category_id': ['Categoria este obligatorie.']})
    try:
        category = get_category(category_id, user_id)
    except NotFoundError:
        raise ValidationError('Categoria selectată nu există.',
                              {'category_id': ['Categoria selectată nu există.']})
    if category.type != CategoryType(expected_type).value:
        raise ValidationError(f'Categoria selectată nu este de tipul {expected_type}.',
                              {'category_id': [f'Categoria trebuie să fie de tipul {expected_type}.']})
    return category


def category_name_exists(user_id, name, exclude_id=None):
    """Verifica (fara diferente intre majuscule si minuscule) daca numele este deja folosit"""
    try:
        query = Category.query.filter(_visible_to(user_id),
                                      func.lower(Category.name) == name.strip().lower())
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        return db.session.query(query.exists()).scalar()
    except SQLAlchemyError as e:
        raise store_failure('verificarea numelui categoriei', e) from e


def create_category(user_id, name, type, icon=None, color=None, budget_max=None):
    if category_name_exists(user_id, name):
        raise ValidationError('Acest nume de categorie există deja. Te rugăm să alegi altul.',
                              {'name': ['Numele este deja folosit.']})
    category = Category(
        user_id=user_id,
        name=name.strip(),
        type=type,
        icon=icon or 'MoreHorizontal',
        color=color or '#64748B',
        budget_max=budget_max,
    )
    try:
        db.session.add(category)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f"adăugarea categoriei '{name}' pentru utilizatorul #{user_id}", e) from e
    return category


def _owned_category(category_id, user_id):
    category = get_category(category_id, user_id)
    # Ensure user can only edit their own categories
    if category.is_default:
        raise ValidationError('Categoriile implicite nu pot fi modificate sau șterse.')
    return category


def _in_use(category):
    # Verificăm dacă există cheltuieli sau sarcini asociate acestei categorii
    try:
        expenses_count = Expense.query.filter_by(category_id=category.id).count()
        charges_count = FixedCharge.query.filter_by(category_id=category.id).count()
    except SQLAlchemyError as e:
        raise store_failure(f'verificarea categoriei #{category.id}', e) from e
    return expenses_count > 0 or charges_count > 0


def update_category(category_id, user_id, **fields):
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Câmpuri necunoscute: {', '.join(sorted(unknown))}.")
    category = _owned_category(category_id, user_id)
    # tipul nu se schimba cat timp cheltuieli sau sarcini folosesc categoria
    if 'type' in fields and fields['type'] != category.type and _in_use(category):
        raise ValidationError('Tipul categoriei nu poate fi schimbat deoarece există cheltuieli sau sarcini asociate.',
                              {'type': ['Categoria este folosită.']})
    if 'name' in fields and category_name_exists(user_id, fields['name'], exclude_id=category.id):
        raise ValidationError('Acest nume de categorie există deja. Te rugăm să alegi altul.',
                              {'name': ['Numele este deja folosit.']})
    try:
        for key, value in fields.items():
            setattr(category, key, value)
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        raise store_failure(f'actualizarea categoriei #{category_id}', e) from e
    return category


def delete_category(category_id, user_id):
    category = _owned_category(category_id, user_id)
    if _in_use(category):
        raise ValidationError('Nu se poate șterge această categorie deoarece există cheltuieli sau sarcini asociate.')

    try:
        db.session.delete(category)
        db.session.commit()
    except SQLAlchemyError as e:
        raise store_failure(f'ștergerea categoriei #{category_id}', e) from e
