from . import db
from flask_login import UserMixin
from datetime import datetime
from decimal import Decimal
import enum
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import validates

from .errors import ValidationError
from .utils import to_decimal, month_bounds


class Currency(str, enum.Enum):
    # moneda este doar o eticheta, nu se face conversie
    EUR = 'EUR'
    USD = 'USD'
    MAD = 'MAD'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            allowed = ', '.join(c.value for c in cls)
            raise ValidationError(f'Moneda {value!r} nu este acceptată ({allowed}).',
                                  {'currency': [f'Valori acceptate: {allowed}.']})


class CycleStatus(str, enum.Enum):
    ACTIVE = 'active'
    CLOSED = 'closed'


class CategoryType(str, enum.Enum):
    CHARGE = 'charge'
    EXPENSE = 'expense'


class User(UserMixin, db.Model):
    # tabelul pentru utilizatori
    __tablename__ = 'user'
    # coloana de identificare unica
    id = db.Column(db.Integer, primary_key=True)

    # Using private attributes with properties for case normalization
    _email = db.Column('email', db.String(120), unique=True, nullable=False)
    _username = db.Column('username', db.String(64), unique=True, nullable=False)

    # parola criptata
    password = db.Column(db.String(256), nullable=False)
    # data crearii contului
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # relatia cu ciclurile lunare (one-to-many)
    cycles = db.relationship('Cycle', backref='user', lazy='dynamic')
    # relatia cu sarcinile fixe (one-to-many)
    charges = db.relationship('FixedCharge', backref='user', lazy='dynamic')
    # relatia cu categoriile proprii (one-to-many)
    categories = db.relationship('Category', backref='user', lazy='dynamic')

    @hybrid_property
    def email(self):
        return self._email

    @email.setter
    def email(self, email):
        self._email = email.lower()

    @hybrid_property
    def username(self):
        return self._username

    @username.setter
    def username(self, username):
        self._username = username.lower()

    def to_dict(self):
        return {'id': self.id, 'email': self.email, 'username': self.username}

    def __repr__(self):
        return f'<User {self.username}>'


class Category(db.Model):
    # categorii pentru sarcini si cheltuieli; user_id NULL = categorie implicita
    __tablename__ = 'category'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    name = db.Column(db.String(64), nullable=False)
    icon = db.Column(db.String(64), default='MoreHorizontal')
    # culoarea pentru afisare in grafice
    color = db.Column(db.String(7), default='#64748B')  # format hex: #RRGGBB
    # plafonul lunar optional
    budget_max = db.Column(db.Numeric(12, 2), nullable=True)
    # tipul categoriei: 'charge' sau 'expense'
    type = db.Column(db.String(10), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    expenses = db.relationship('Expense', backref='category', lazy='dynamic')
    charges = db.relationship('FixedCharge', backref='category', lazy='dynamic')

    @property
    def is_default(self):
        return self.user_id is None

    @validates('type')
    def validate_type(self, key, value):
        try:
            return CategoryType(value).value
        except ValueError:
            raise ValidationError(f'Tipul de categorie {value!r} nu este valid.',
                                  {'type': ["Valori acceptate: 'charge', 'expense'."]})

    @validates('budget_max')
    def validate_budget_max(self, key, value):
        if value is None or value == '':
            return None
        amount = to_decimal(value, key)
        if amount < 0:
            raise ValidationError('Plafonul nu poate fi negativ.', {key: ['Valoare negativă.']})
        return amount

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'icon': self.icon,
            'color': self.color,
            'budget_max': self.budget_max,
            'type': self.type,
            'is_default': self.is_default,
        }

    def __repr__(self):
        return f'<Category {self.name} ({self.type})>'


class Cycle(db.Model):
    """Perioada de buget a unei luni calendaristice pentru un utilizator.

    Totalurile (total_charges, total_depenses, reste) sunt denormalizate si
    intretinute de registrul de cicluri; coloana `version` protejeaza
    recalcularea de actualizari pierdute.
    """
    __tablename__ = 'cycle'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'year', 'month', name='uix_cycle_user_year_month'),
        db.CheckConstraint("currency IN ('EUR', 'USD', 'MAD')", name='ck_cycle_currency'),
        db.CheckConstraint("status IN ('active', 'closed')", name='ck_cycle_status'),
        db.CheckConstraint('month BETWEEN 1 AND 12', name='ck_cycle_month'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    # venitul declarat pentru perioada
    income = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_charges = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_depenses = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    # reste = income - total_charges - total_depenses
    reste = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    status = db.Column(db.String(10), nullable=False, default=CycleStatus.ACTIVE.value)
    currency = db.Column(db.String(3), nullable=False, default=Currency.EUR.value)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    expenses = db.relationship('Expense', backref='cycle', lazy='dynamic')

    @validates('currency')
    def validate_currency(self, key, value):
        return Currency.parse(value).value

    @validates('month')
    def validate_month(self, key, value):
        if not isinstance(value, int) or not 1 <= value <= 12:
            raise ValidationError(f'Luna {value!r} nu este validă.', {'month': ['Luna trebuie să fie între 1 și 12.']})
        return value

    @validates('income', 'total_charges', 'total_depenses')
    def validate_amounts(self, key, value):
        amount = to_decimal(value, key)
        if amount < 0:
            raise ValidationError(f'Câmpul {key} nu poate fi negativ.', {key: ['Valoare negativă.']})
        return amount

    @property
    def is_active(self):
        return self.status == CycleStatus.ACTIVE.value

    @property
    def is_closed(self):
        return self.status == CycleStatus.CLOSED.value

    def set_period(self):
        self.period_start, self.period_end = month_bounds(self.year, self.month)

    def compute_reste(self):
        return (to_decimal(self.income) - to_decimal(self.total_charges)
                - to_decimal(self.total_depenses))

    def to_dict(self):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'year': self.year,
            'month': self.month,
            'income': self.income,
            'total_charges': self.total_charges,
            'total_depenses': self.total_depenses,
            'reste': self.reste,
            'status': self.status,
            'currency': self.currency,
            'period_start': self.period_start.isoformat() if self.period_start else None,
            'period_end': self.period_end.isoformat() if self.period_end else None,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if getattr(self, 'totals_stale', False):
            data['totals_stale'] = True
        return data

    def __repr__(self):
        return f'<Cycle {self.year}-{self.month:02d} user={self.user_id} ({self.status})>'


class FixedCharge(db.Model):
    # sarcini lunare recurente (chirie, asigurare, abonamente)
    __tablename__ = 'fixed_charge'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=False)
    # ziua din luna in care se face plata
    debit_day = db.Column(db.Integer, nullable=False, default=1)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @validates('amount')
    def validate_amount(self, key, value):
        amount = to_decimal(value, key)
        if amount <= 0:
            raise ValidationError('Suma trebuie să fie mai mare de 0.', {key: ['Suma trebuie să fie mai mare de 0.']})
        return amount

    @validates('debit_day')
    def validate_debit_day(self, key, value):
        if not isinstance(value, int) or not 1 <= value <= 31:
            raise ValidationError(f'Ziua de plată {value!r} nu este validă.',
                                  {key: ['Ziua trebuie să fie între 1 și 31.']})
        return value

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'amount': self.amount,
            'category_id': self.category_id,
            'category': self.category.to_dict() if self.category else None,
            'debit_day': self.debit_day,
            'active': self.active,
        }

    def __repr__(self):
        return f'<FixedCharge {self.name}: {self.amount}>'


class Expense(db.Model):
    # cheltuiala variabila, apartine unui singur ciclu
    __tablename__ = 'expense'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    cycle_id = db.Column(db.Integer, db.ForeignKey('cycle.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255))
    tags = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @validates('amount')
    def validate_amount(self, key, value):
        amount = to_decimal(value, key)
        if amount <= 0:
            raise ValidationError('Suma trebuie să fie mai mare de 0.', {key: ['Suma trebuie să fie mai mare de 0.']})
        return amount

    @validates('tags')
    def validate_tags(self, key, value):
        if not value:
            return None
        if isinstance(value, str):
            value = [value]
        return [str(t).strip() for t in value if str(t).strip()] or None

    def to_dict(self):
        data = {
            'id': self.id,
            'cycle_id': self.cycle_id,
            'amount': self.amount,
            'category_id': self.category_id,
            'category': self.category.to_dict() if self.category else None,
            'date': self.date.isoformat() if self.date else None,
            'description': self.description,
            'tags': self.tags or [],
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        # marcaj tranzitoriu setat cand recalcularea totalurilor ciclului a esuat
        if getattr(self, 'totals_stale', False):
            data['totals_stale'] = True
        return data

    def __repr__(self):
        return f'<Expense {self.description}: {self.amount}>'


class IncomeSource(db.Model):
    # surse de venit (salariu, prime, ajutoare)
    __tablename__ = 'income_source'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    recurrent = db.Column(db.Boolean, nullable=False, default=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @validates('amount')
    def validate_amount(self, key, value):
        amount = to_decimal(value, key)
        if amount <= 0:
            raise ValidationError('Suma trebuie să fie mai mare de 0.', {key: ['Suma trebuie să fie mai mare de 0.']})
        return amount

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'amount': self.amount,
            'recurrent': self.recurrent,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
        }

    def __repr__(self):
        return f'<IncomeSource {self.name}: {self.amount}>'
