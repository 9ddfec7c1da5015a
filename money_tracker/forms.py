from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, DecimalField, IntegerField, DateField, BooleanField, TextAreaField, Field
from wtforms.validators import DataRequired, Email, EqualTo, Length, ValidationError, NumberRange, Regexp, Optional, AnyOf, StopValidation
from decimal import Decimal
from datetime import date

from .models import User
from .utils import MAX_AMOUNT, CENTS

# sumele trebuie sa incapa in coloanele Numeric(12, 2)
AMOUNT_CAP = NumberRange(max=MAX_AMOUNT - CENTS, message='Suma este prea mare.')


def present(message='Câmpul este obligatoriu.'):
    """Ca DataRequired, dar accepta 0 ca valoare (venit zero, de exemplu)"""
    def _present(form, field):
        if field.data is None:
            # valoarea a fost trimisa dar nu a putut fi interpretata
            if field.process_errors:
                raise StopValidation()
            raise StopValidation(message)
    return _present


class TagListField(Field):
    """Lista de etichete: accepta o lista JSON sau un sir separat prin virgule"""

    def _value(self):
        return ', '.join(self.data or [])

    def process_formdata(self, valuelist):
        tags = []
        for value in valuelist:
            if value is None:
                continue
            tags.extend(t.strip() for t in str(value).split(','))
        self.data = [t for t in tags if t]


class ApiForm(FlaskForm):
    """Formular de baza pentru API-ul JSON; sesiunea este protejata prin SameSite"""

    class Meta:
        csrf = False

    def validate_partial(self, names):
        """Validare doar pentru campurile prezente intr-o cerere PATCH"""
        success = True
        for name in names:
            field = self._fields.get(name)
            if field is None:
                continue
            inline = getattr(self.__class__, f'validate_{name}', None)
            extra = [inline] if inline else []
            if not field.validate(self, extra):
                success = False
        return success

    def data_for(self, names):
        return {name: self._fields[name].data for name in names if name in self._fields}


class LoginForm(ApiForm):
    """Formular pentru autentificarea utilizatorilor"""
    identifier = StringField('Email sau Nume utilizator', validators=[
        DataRequired(message='Câmpul pentru email sau nume utilizator este obligatoriu.')
    ])
    password = PasswordField('Parola', validators=[
        DataRequired(message='Câmpul pentru parolă este obligatoriu.')
    ])


class RegistrationForm(ApiForm):
    """Formular pentru înregistrarea utilizatorilor noi"""
    email = StringField('Email', validators=[
        DataRequired(message='Câmpul pentru email este obligatoriu.'),
        Email(message='Adresa de email nu este validă.')
    ])
    username = StringField('Nume utilizator', validators=[
        DataRequired(message='Câmpul pentru nume utilizator este obligatoriu.'),
        Length(min=3, max=64, message='Numele de utilizator trebuie să aibă între 3 și 64 de caractere.'),
        Regexp('^[A-Za-z0-9_.]+$', message='Numele de utilizator poate conține doar litere, cifre, underscore și punct.')
    ])
    password = PasswordField('Parola', validators=[
        DataRequired(message='Câmpul pentru parolă este obligatoriu.'),
        Length(min=8, message='Parola trebuie să aibă cel puțin 8 caractere.'),
        Regexp(r'(?=.*\d)(?=.*[a-z])(?=.*[A-Z])', message='Parola trebuie să conțină cel puțin o literă mică, o literă mare și o cifră.')
    ])
    password2 = PasswordField('Confirmă parola', validators=[
        DataRequired(message='Câmpul pentru confirmarea parolei este obligatoriu.'),
        EqualTo('password', message='Parolele trebuie să coincidă.')
    ])

    def validate_email(self, email):
        """Validare pentru unicitatea adresei de email"""
        user = User.query.filter_by(_email=email.data.lower()).first()
        if user:
            raise ValidationError('Această adresă de email este deja utilizată.')

    def validate_username(self, username):
        """Validare pentru unicitatea numelui de utilizator"""
        user = User.query.filter_by(_username=username.data.lower()).first()
        if user:
            raise ValidationError('Acest nume de utilizator este deja utilizat.')


class CycleForm(ApiForm):
    """Formular pentru deschiderea unui ciclu lunar"""
    # lipsa venitului => totalul veniturilor recurente active
    income = DecimalField('Venit', validators=[
        Optional(),
        NumberRange(min=Decimal('0'), message='Venitul nu poate fi negativ.'), AMOUNT_CAP
    ], places=2)
    year = IntegerField('An', validators=[
        present('Câmpul pentru an este obligatoriu.'),
        NumberRange(min=2000, max=2100, message='Anul trebuie să fie între 2000 și 2100.')
    ])
    month = IntegerField('Lună', validators=[
        present('Câmpul pentru lună este obligatoriu.'),
        NumberRange(min=1, max=12, message='Luna trebuie să fie între 1 și 12.')
    ])
    currency = StringField('Monedă', validators=[Optional(), Length(min=3, max=3)])
    # lipsa => totalul sarcinilor fixe active in acest moment
    initial_charges = DecimalField('Total sarcini', validators=[
        Optional(),
        NumberRange(min=Decimal('0'), message='Totalul sarcinilor nu poate fi negativ.'), AMOUNT_CAP
    ], places=2)
    notes = TextAreaField('Note', validators=[Optional(), Length(max=1000)])


class CycleUpdateForm(ApiForm):
    """Formular pentru actualizarea partiala a unui ciclu"""
    income = DecimalField('Venit', validators=[
        present(), NumberRange(min=Decimal('0'), message='Venitul nu poate fi negativ.'), AMOUNT_CAP
    ], places=2)
    total_charges = DecimalField('Total sarcini', validators=[
        present(), NumberRange(min=Decimal('0'), message='Totalul sarcinilor nu poate fi negativ.'), AMOUNT_CAP
    ], places=2)
    total_depenses = DecimalField('Total cheltuieli', validators=[
        present(), NumberRange(min=Decimal('0'), message='Totalul cheltuielilor nu poate fi negativ.'), AMOUNT_CAP
    ], places=2)
    currency = StringField('Monedă', validators=[DataRequired(), Length(min=3, max=3)])
    notes = TextAreaField('Note', validators=[Optional(), Length(max=1000)])


class CloseCycleForm(ApiForm):
    """Formular pentru inchiderea ciclului, optional cu deschiderea lunii urmatoare"""
    rollover = BooleanField('Deschide luna următoare', default=False)
    income = DecimalField('Venit pentru luna următoare', validators=[
        Optional(), NumberRange(min=Decimal('0'), message='Venitul nu poate fi negativ.'), AMOUNT_CAP
    ], places=2)
    currency = StringField('Monedă', validators=[Optional(), Length(min=3, max=3)])


class ExpenseForm(ApiForm):
    """Formular pentru adăugarea și editarea cheltuielilor"""
    amount = DecimalField('Sumă', validators=[
        present('Câmpul pentru sumă este obligatoriu.'),
        NumberRange(min=Decimal('0.01'), message='Suma trebuie să fie mai mare de 0.'), AMOUNT_CAP
    ], places=2)
    category_id = IntegerField('Categorie', validators=[
        present('Trebuie să selectezi o categorie.')
    ])
    date = DateField('Data', validators=[Optional()], default=date.today)
    description = StringField('Descriere', validators=[
        Optional(),
        Length(max=255, message='Descrierea nu poate depăși 255 caractere.')
    ])
    tags = TagListField('Etichete')

    def validate_date(self, field):
        """Validare pentru data cheltuielii"""
        if field.data is None:
            return
        # data nu trebuie sa fie exagerat de veche (ex: mai veche de 100 ani)
        min_date = date.today().replace(year=date.today().year - 100)
        if field.data < min_date:
            raise ValidationError('Data cheltuielii este prea veche.')

    def validate_tags(self, field):
        if field.data and any(len(t) > 32 for t in field.data):
            raise ValidationError('O etichetă nu poate depăși 32 de caractere.')


class ChargeForm(ApiForm):
    """Formular pentru sarcinile fixe lunare"""
    name = StringField('Nume', validators=[
        DataRequired(message='Câmpul pentru nume este obligatoriu.'),
        Length(max=128, message='Numele nu poate depăși 128 caractere.')
    ])
    amount = DecimalField('Sumă', validators=[
        present('Câmpul pentru sumă este obligatoriu.'),
        NumberRange(min=Decimal('0.01'), message='Suma trebuie să fie mai mare de 0.'), AMOUNT_CAP
    ], places=2)
    category_id = IntegerField('Categorie', validators=[
        present('Trebuie să selectezi o categorie.')
    ])
    debit_day = IntegerField('Ziua plății', validators=[
        Optional(),
        NumberRange(min=1, max=31, message='Ziua trebuie să fie între 1 și 31.')
    ], default=1)
    active = BooleanField('Activă', default=True)


class CategoryForm(ApiForm):
    """Formular pentru adăugarea și editarea categoriilor"""
    name = StringField('Nume', validators=[
        DataRequired(message='Câmpul pentru nume este obligatoriu.'),
        Length(max=64, message='Numele nu poate depăși 64 caractere.')
    ])
    type = StringField('Tip', validators=[
        DataRequired(message='Trebuie să selectezi tipul categoriei.'),
        AnyOf(['charge', 'expense'], message="Tipul trebuie să fie 'charge' sau 'expense'.")
    ])
    icon = StringField('Pictogramă', validators=[Optional(), Length(max=64)])
    color = StringField('Culoare (hex)', validators=[
        Optional(),
        Regexp('^#[0-9A-Fa-f]{6}$', message='Codul de culoare trebuie să fie în format #RRGGBB (exemplu: #3498db).')
    ])
    budget_max = DecimalField('Plafon lunar', validators=[
        Optional(),
        NumberRange(min=Decimal('0'), message='Plafonul nu poate fi negativ.'), AMOUNT_CAP
    ], places=2)


class IncomeForm(ApiForm):
    """Formular pentru sursele de venit"""
    name = StringField('Nume', validators=[
        DataRequired(message='Câmpul pentru nume este obligatoriu.'),
        Length(max=128)
    ])
    amount = DecimalField('Sumă', validators=[
        present('Câmpul pentru sumă este obligatoriu.'),
        NumberRange(min=Decimal('0.01'), message='Suma trebuie să fie mai mare de 0.'), AMOUNT_CAP
    ], places=2)
    recurrent = BooleanField('Recurent', default=True)
    start_date = DateField('Data de început', validators=[Optional()], default=date.today)
    end_date = DateField('Data de sfârșit', validators=[Optional()])

    def validate_end_date(self, field):
        """Validare pentru data de sfârșit a venitului"""
        # la o actualizare partiala data de inceput poate lipsi din cerere
        if not field.data or not self.start_date.raw_data or not self.start_date.data:
            return
        if field.data < self.start_date.data:
            raise ValidationError('Data de sfârșit trebuie să fie după data de început.')
