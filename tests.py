import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.security import generate_password_hash

from money_tracker import create_app, db
from money_tracker.models import User, Category, Cycle, Expense, FixedCharge
from money_tracker.errors import (NotFoundError, DuplicateCycleError, ValidationError,
                                  CycleClosedError, StoreError)
from money_tracker import ledger, expenses, charges, categories, incomes, stats
from config import Config
from init_db import seed_default_categories


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'  # Folosim o bază de date SQLite în memorie pentru teste
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    ALLOW_CLOSED_CYCLE_EDITS = False
    DEFAULT_CURRENCY = 'EUR'


class LedgerTestCase(unittest.TestCase):
    """Baza comuna: aplicatie de test, categorii implicite si un utilizator"""

    def setUp(self):
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        seed_default_categories()
        self.user = self.make_user('ana', 'ana@example.com')

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def make_user(self, username, email, password='Parola123'):
        u = User(username=username, email=email, password=generate_password_hash(password))
        db.session.add(u)
        db.session.commit()
        return u

    def category(self, name):
        return Category.query.filter_by(name=name, user_id=None).first()

    def add_expense(self, cycle, amount, category_name='Courses', **kwargs):
        return expenses.create_expense(self.user.id, cycle.id, amount,
                                       self.category(category_name).id, **kwargs)

    def assertTotalsConsistent(self, cycle_id):
        cycle = db.session.get(Cycle, cycle_id)
        total = sum((e.amount for e in Expense.query.filter_by(cycle_id=cycle_id)), Decimal('0'))
        self.assertEqual(cycle.total_depenses, total)
        self.assertEqual(cycle.reste, cycle.income - cycle.total_charges - cycle.total_depenses)


class CycleLedgerTestCase(LedgerTestCase):

    def test_create_cycle(self):
        """Test pentru deschiderea unui ciclu nou"""
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 2, 800)

        self.assertEqual(cycle.status, 'active')
        self.assertEqual(cycle.currency, 'EUR')
        self.assertEqual(cycle.total_depenses, Decimal('0'))
        self.assertEqual(cycle.reste, Decimal('2200'))
        self.assertEqual(cycle.period_start, date(2026, 2, 1))
        self.assertEqual(cycle.period_end, date(2026, 2, 28))

    def test_duplicate_month_is_rejected(self):
        first = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        ledger.close_cycle(first.id)

        with self.assertRaises(DuplicateCycleError):
            ledger.create_cycle(self.user.id, 2500, 2026, 5)
        self.assertEqual(Cycle.query.filter_by(user_id=self.user.id).count(), 1)
        self.assertEqual(db.session.get(Cycle, first.id).income, Decimal('3000'))

    def test_second_active_cycle_is_rejected(self):
        ledger.create_cycle(self.user.id, 3000, 2026, 5)
        with self.assertRaises(DuplicateCycleError):
            ledger.create_cycle(self.user.id, 3000, 2026, 6)
        self.assertEqual(Cycle.query.count(), 1)

    def test_same_month_for_other_user(self):
        other = self.make_user('ion', 'ion@example.com')
        ledger.create_cycle(self.user.id, 3000, 2026, 5)
        cycle = ledger.create_cycle(other.id, 1000, 2026, 5)
        self.assertEqual(cycle.user_id, other.id)

    def test_invalid_currency_and_month(self):
        with self.assertRaises(ValidationError):
            ledger.create_cycle(self.user.id, 3000, 2026, 5, currency='GBP')
        with self.assertRaises(ValidationError):
            ledger.create_cycle(self.user.id, 3000, 2026, 13)
        with self.assertRaises(ValidationError):
            ledger.create_cycle(self.user.id, 3000, 0, 5)
        with self.assertRaises(ValidationError):
            ledger.create_cycle(self.user.id, 3000, 10000, 5)
        with self.assertRaises(ValidationError):
            ledger.create_cycle(self.user.id, -10, 2026, 5)
        self.assertEqual(Cycle.query.count(), 0)

    def test_currency_is_normalized(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5, currency='mad')
        self.assertEqual(cycle.currency, 'MAD')

    def test_close_cycle_uses_live_charges(self):
        """Închiderea recitește sarcinile active: 3000 - 800 - 450 = 1750"""
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5, 500)
        charges.create_charge(self.user.id, 'Chirie', 650, self.category('Loyer').id)
        charges.create_charge(self.user.id, 'Asigurare', 150, self.category('Assurance').id)
        self.add_expense(cycle, 300)
        self.add_expense(cycle, 150, 'Transport')

        closed = ledger.close_cycle(cycle.id)

        self.assertEqual(closed.total_charges, Decimal('800'))
        self.assertEqual(closed.total_depenses, Decimal('450'))
        self.assertEqual(closed.reste, Decimal('1750'))
        self.assertEqual(closed.status, 'closed')

    def test_close_twice_is_rejected(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        charges.create_charge(self.user.id, 'Chirie', 800, self.category('Loyer').id)
        ledger.close_cycle(cycle.id)

        # o sarcina noua nu trebuie sa ajunga in ciclul inchis
        charges.create_charge(self.user.id, 'Internet', 30, self.category('Factures').id)
        with self.assertRaises(CycleClosedError):
            ledger.close_cycle(cycle.id)

        cycle = db.session.get(Cycle, cycle.id)
        self.assertEqual(cycle.total_charges, Decimal('800'))
        self.assertEqual(cycle.reste, Decimal('2200'))

    def test_close_and_rollover(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 12, currency='USD')
        charges.create_charge(self.user.id, 'Chirie', 800, self.category('Loyer').id)

        closed, next_cycle = ledger.close_and_rollover(cycle.id)

        self.assertTrue(closed.is_closed)
        self.assertEqual((next_cycle.year, next_cycle.month), (2027, 1))
        self.assertEqual(next_cycle.income, Decimal('3000'))
        self.assertEqual(next_cycle.currency, 'USD')
        self.assertEqual(next_cycle.total_charges, Decimal('800'))
        self.assertEqual(next_cycle.reste, Decimal('2200'))
        self.assertEqual(ledger.get_active_cycle(self.user.id).id, next_cycle.id)

    def test_update_cycle_recomputes_reste(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5, 800)
        self.add_expense(cycle, 100)

        cycle = ledger.update_cycle(cycle.id, income=3500, notes='prima inclusa')

        self.assertEqual(cycle.reste, Decimal('2600'))
        self.assertEqual(cycle.notes, 'prima inclusa')

    def test_update_cycle_rejects_derived_fields(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        with self.assertRaises(ValidationError):
            ledger.update_cycle(cycle.id, reste=10)
        with self.assertRaises(ValidationError):
            ledger.update_cycle(cycle.id, status='closed')
        self.assertEqual(db.session.get(Cycle, cycle.id).reste, Decimal('3000'))

    def test_update_closed_cycle_totals_is_rejected(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        ledger.close_cycle(cycle.id)
        with self.assertRaises(CycleClosedError):
            ledger.update_cycle(cycle.id, income=4000)
        # notele raman editabile
        self.assertEqual(ledger.update_cycle(cycle.id, notes='ok').notes, 'ok')

    def test_cycle_of_other_user_is_not_found(self):
        other = self.make_user('ion', 'ion@example.com')
        cycle = ledger.create_cycle(other.id, 1000, 2026, 5)
        with self.assertRaises(NotFoundError):
            ledger.get_cycle(cycle.id, self.user.id)

    def test_delete_cycle_removes_expenses(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        self.add_expense(cycle, 100)
        ledger.delete_cycle(cycle.id)
        self.assertEqual(Cycle.query.count(), 0)
        self.assertEqual(Expense.query.count(), 0)

    def test_list_cycles_newest_first(self):
        for month in (1, 2, 3):
            cycle = ledger.create_cycle(self.user.id, 1000, 2026, month)
            ledger.close_cycle(cycle.id)
        self.assertEqual([c.month for c in ledger.list_cycles(self.user.id)], [3, 2, 1])
        self.assertEqual(len(ledger.list_cycles(self.user.id, limit=2)), 2)


class RecomputeTestCase(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5, 800)
        # cheltuieli scrise direct, fara recalcularea totalurilor
        for amount in (120, 80):
            db.session.add(Expense(user_id=self.user.id, cycle_id=self.cycle.id, amount=amount,
                                   category_id=self.category('Courses').id, date=date(2026, 5, 3)))
        db.session.commit()

    def test_recompute_restores_totals(self):
        cycle = ledger.recompute_expense_aggregate(self.cycle.id)
        self.assertEqual(cycle.total_depenses, Decimal('200'))
        self.assertEqual(cycle.reste, Decimal('2000'))

    def test_recompute_retries_on_version_conflict(self):
        real_commit = Session.commit
        calls = []

        def flaky_commit(session):
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError('conflict de versiune')
            return real_commit(session)

        with patch.object(Session, 'commit', autospec=True, side_effect=flaky_commit):
            cycle = ledger.recompute_expense_aggregate(self.cycle.id)

        self.assertEqual(len(calls), 2)
        self.assertEqual(cycle.total_depenses, Decimal('200'))
        self.assertTotalsConsistent(self.cycle.id)

    def test_recompute_gives_up_after_retries(self):
        with patch.object(Session, 'commit', side_effect=StaleDataError('conflict')):
            with self.assertRaises(StoreError):
                ledger.recompute_expense_aggregate(self.cycle.id)
        self.assertEqual(db.session.get(Cycle, self.cycle.id).total_depenses, Decimal('0'))

    def test_recompute_leaves_closed_cycle_frozen(self):
        ledger.close_cycle(self.cycle.id)
        db.session.add(Expense(user_id=self.user.id, cycle_id=self.cycle.id, amount=50,
                               category_id=self.category('Courses').id, date=date(2026, 5, 4)))
        db.session.commit()

        cycle = ledger.recompute_expense_aggregate(self.cycle.id)
        self.assertEqual(cycle.total_depenses, Decimal('0'))

    def test_recompute_unknown_cycle(self):
        with self.assertRaises(NotFoundError):
            ledger.recompute_expense_aggregate(9999)


class ExpenseTestCase(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5, 800)

    def test_totals_follow_expense_changes(self):
        """Totalurile ciclului urmează adăugarea, modificarea și ștergerea"""
        e1 = self.add_expense(self.cycle, 120, date=date(2026, 5, 2))
        e2 = self.add_expense(self.cycle, Decimal('45.50'), 'Transport')
        self.assertTotalsConsistent(self.cycle.id)
        self.assertEqual(db.session.get(Cycle, self.cycle.id).total_depenses, Decimal('165.50'))

        expenses.update_expense(e1.id, amount=100)
        self.assertTotalsConsistent(self.cycle.id)
        self.assertEqual(db.session.get(Cycle, self.cycle.id).reste, Decimal('2054.50'))

        cycle = expenses.delete_expense(e2.id)
        self.assertFalse(getattr(cycle, 'totals_stale', False))
        self.assertTotalsConsistent(self.cycle.id)
        self.assertEqual(db.session.get(Cycle, self.cycle.id).total_depenses, Decimal('100'))

    def test_update_without_amount_keeps_totals(self):
        expense = self.add_expense(self.cycle, 60)
        expenses.update_expense(expense.id, description='piata', category_id=self.category('Loisirs').id)
        expense = db.session.get(Expense, expense.id)
        self.assertEqual(expense.description, 'piata')
        self.assertTotalsConsistent(self.cycle.id)

    def test_invalid_expenses(self):
        with self.assertRaises(ValidationError):
            self.add_expense(self.cycle, 0)
        with self.assertRaises(ValidationError):
            expenses.create_expense(self.user.id, self.cycle.id, 10, None)
        # categoria trebuie sa fie de tipul 'expense'
        with self.assertRaises(ValidationError):
            self.add_expense(self.cycle, 10, 'Loyer')
        with self.assertRaises(NotFoundError):
            expenses.create_expense(self.user.id, 9999, 10, self.category('Courses').id)
        self.assertEqual(Expense.query.count(), 0)

    def test_failed_refresh_is_not_fatal(self):
        with patch('money_tracker.ledger.recompute_expense_aggregate',
                   side_effect=StoreError('baza de date indisponibilă')):
            expense = self.add_expense(self.cycle, 75)

        self.assertTrue(expense.totals_stale)
        self.assertTrue(expense.to_dict()['totals_stale'])
        self.assertEqual(Expense.query.count(), 1)
        self.assertEqual(db.session.get(Cycle, self.cycle.id).total_depenses, Decimal('0'))

        # recalcularea ulterioara reface totalurile
        ledger.recompute_expense_aggregate(self.cycle.id)
        self.assertTotalsConsistent(self.cycle.id)

    def test_closed_cycle_rejects_expense_changes(self):
        expense = self.add_expense(self.cycle, 40)
        ledger.close_cycle(self.cycle.id)

        with self.assertRaises(CycleClosedError):
            self.add_expense(self.cycle, 10)
        with self.assertRaises(CycleClosedError):
            expenses.update_expense(expense.id, amount=5)
        with self.assertRaises(CycleClosedError):
            expenses.delete_expense(expense.id)

    def test_closed_cycle_edits_when_allowed(self):
        self.add_expense(self.cycle, 40)
        ledger.close_cycle(self.cycle.id)
        self.app.config['ALLOW_CLOSED_CYCLE_EDITS'] = True

        self.add_expense(self.cycle, 10)

        cycle = db.session.get(Cycle, self.cycle.id)
        self.assertEqual(Expense.query.count(), 2)
        # totalurile inghetate la inchidere nu se schimba
        self.assertEqual(cycle.total_depenses, Decimal('40'))

    def test_oversized_amounts_are_rejected(self):
        # Numeric(12, 2) nu poate pastra 10^10 sau mai mult
        with self.assertRaises(ValidationError):
            self.add_expense(self.cycle, '1e30')
        with self.assertRaises(ValidationError):
            self.add_expense(self.cycle, Decimal('10000000000'))
        with self.assertRaises(ValidationError):
            ledger.update_cycle(self.cycle.id, income='1e30')
        self.assertEqual(Expense.query.count(), 0)
        self.assertEqual(self.add_expense(self.cycle, Decimal('9999999999.99')).amount,
                         Decimal('9999999999.99'))

    def test_search_treats_wildcards_literally(self):
        self.add_expense(self.cycle, 10, description='Plată card')
        self.add_expense(self.cycle, 20, description='abonament_sala')
        self.add_expense(self.cycle, 30, description='reducere 10%')

        self.assertEqual([e.amount for e in expenses.search_expenses(self.cycle.id, '_')], [Decimal('20')])
        self.assertEqual([e.amount for e in expenses.search_expenses(self.cycle.id, '%')], [Decimal('30')])
        self.assertEqual(expenses.search_expenses(self.cycle.id, 'abonament%'), [])

    def test_filters_and_search(self):
        self.add_expense(self.cycle, 10, date=date(2026, 5, 1), description='Pâine', tags=['bio'])
        self.add_expense(self.cycle, 20, 'Transport', date=date(2026, 5, 10), description='Metrou')
        self.add_expense(self.cycle, 30, date=date(2026, 5, 20), description='Supermarket', tags=['bio', 'lunar'])

        self.assertEqual([e.amount for e in expenses.list_expenses(self.cycle.id)],
                         [Decimal('30'), Decimal('20'), Decimal('10')])
        self.assertEqual(len(expenses.list_expenses_by_category(self.cycle.id, self.category('Courses').id)), 2)
        self.assertEqual(len(expenses.list_expenses_by_date_range(
            self.cycle.id, date(2026, 5, 5), date(2026, 5, 31))), 2)
        self.assertEqual(len(expenses.search_expenses(self.cycle.id, 'bio')), 2)
        self.assertEqual(len(expenses.search_expenses(self.cycle.id, 'metrou')), 1)
        self.assertEqual(len(expenses.recent_expenses(self.cycle.id, 2)), 2)


class ChargeCategoryIncomeTestCase(LedgerTestCase):

    def test_active_charges_total(self):
        rent = charges.create_charge(self.user.id, 'Chirie', 650, self.category('Loyer').id, debit_day=5)
        charges.create_charge(self.user.id, 'Internet', 30, self.category('Factures').id, debit_day=20)
        charges.create_charge(self.user.id, 'Sala', 40, self.category('Factures').id, active=False)

        self.assertEqual(charges.active_charges_total(self.user.id), Decimal('680'))
        self.assertEqual([c.debit_day for c in charges.list_charges(self.user.id, active_only=True)], [5, 20])

        charges.toggle_charge(rent.id, False)
        self.assertEqual(charges.active_charges_total(self.user.id), Decimal('30'))

    def test_charge_validation(self):
        with self.assertRaises(ValidationError):
            charges.create_charge(self.user.id, 'Chirie', -5, self.category('Loyer').id)
        with self.assertRaises(ValidationError):
            charges.create_charge(self.user.id, 'Chirie', 500, self.category('Loyer').id, debit_day=32)
        with self.assertRaises(ValidationError):
            charges.create_charge(self.user.id, 'Chirie', 500, self.category('Courses').id)
        self.assertEqual(FixedCharge.query.count(), 0)

    def test_charge_changes_leave_cycles_alone(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5, 0)
        charges.create_charge(self.user.id, 'Chirie', 650, self.category('Loyer').id)
        self.assertEqual(db.session.get(Cycle, cycle.id).total_charges, Decimal('0'))

    def test_categories_visibility(self):
        other = self.make_user('ion', 'ion@example.com')
        categories.create_category(other.id, 'Animale', 'expense')
        own = categories.create_category(self.user.id, 'Cadouri', 'expense', budget_max=100)

        names = [c.name for c in categories.list_categories(self.user.id, 'expense')]
        self.assertIn('Cadouri', names)
        self.assertIn('Courses', names)
        self.assertNotIn('Animale', names)
        self.assertNotIn('Loyer', names)
        self.assertEqual([c.id for c in categories.list_user_categories(self.user.id)], [own.id])
        self.assertEqual(len(categories.list_default_categories()), 10)

    def test_category_rules(self):
        with self.assertRaises(ValidationError):
            categories.create_category(self.user.id, 'courses', 'expense')
        with self.assertRaises(ValidationError):
            categories.update_category(self.category('Divers').id, self.user.id, name='Altele')
        with self.assertRaises(ValidationError):
            categories.delete_category(self.category('Divers').id, self.user.id)

        own = categories.create_category(self.user.id, 'Cadouri', 'expense')
        cycle = ledger.create_cycle(self.user.id, 1000, 2026, 5)
        expenses.create_expense(self.user.id, cycle.id, 25, own.id)
        with self.assertRaises(ValidationError):
            categories.delete_category(own.id, self.user.id)
        # o categorie folosita nu isi poate schimba tipul
        with self.assertRaises(ValidationError):
            categories.update_category(own.id, self.user.id, type='charge')
        self.assertEqual(categories.get_category(own.id).type, 'expense')
        self.assertEqual(categories.update_category(own.id, self.user.id, type='expense', icon='Gift').icon, 'Gift')

        unused = categories.create_category(self.user.id, 'Abonamente', 'expense')
        self.assertEqual(categories.update_category(unused.id, self.user.id, type='charge').type, 'charge')

        free = categories.create_category(self.user.id, 'Vacanță', 'expense')
        categories.delete_category(free.id, self.user.id)
        with self.assertRaises(NotFoundError):
            categories.get_category(free.id, self.user.id)

    def test_recurring_income_total(self):
        today = date(2026, 5, 15)
        incomes.create_income(self.user.id, 'Salariu', 2800, start_date=date(2025, 1, 1))
        incomes.create_income(self.user.id, 'Chirie încasată', 400, start_date=date(2025, 1, 1),
                              end_date=date(2026, 4, 30))
        incomes.create_income(self.user.id, 'Primă', 500, recurrent=False, start_date=date(2026, 5, 1))

        self.assertEqual(incomes.recurring_income_total(self.user.id, today), Decimal('2800'))
        self.assertEqual(len(incomes.list_active_incomes(self.user.id, today)), 2)
        self.assertEqual(len(incomes.list_recurrent_incomes(self.user.id)), 2)

    def test_income_dates(self):
        with self.assertRaises(ValidationError):
            incomes.create_income(self.user.id, 'Salariu', 2800, start_date=date(2026, 5, 1),
                                  end_date=date(2026, 4, 1))
        income = incomes.create_income(self.user.id, 'Salariu', 2800, start_date=date(2026, 5, 1))
        with self.assertRaises(ValidationError):
            incomes.update_income(income.id, end_date=date(2026, 1, 1))
        self.assertEqual(incomes.update_income(income.id, amount=3000).amount, Decimal('3000'))


class StatsTestCase(LedgerTestCase):

    def test_summary_with_zero_income(self):
        cycle = ledger.create_cycle(self.user.id, 0, 2026, 5)
        summary = stats.monthly_summary(cycle.id, today=date(2026, 5, 10))
        self.assertEqual(summary['pourcentage_utilise'], 0)
        self.assertEqual(summary['taux_epargne'], 0)

    def test_summary_days(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 2, 800)
        self.add_expense(cycle, 100)

        summary = stats.monthly_summary(cycle.id, today=date(2026, 2, 10))
        self.assertEqual(summary['jours_ecoules'], 10)
        self.assertEqual(summary['jours_restants'], 18)
        self.assertEqual(summary['depenses_par_jour'], Decimal('10.00'))
        self.assertEqual(summary['budget_journalier_restant'], Decimal('116.67'))
        self.assertEqual(summary['pourcentage_utilise'], 30.0)
        self.assertEqual(summary['taux_epargne'], 70.0)
        self.assertFalse(summary['depassement'])

        # dupa sfarsitul lunii zilele scurse sunt plafonate
        late = stats.monthly_summary(cycle.id, today=date(2026, 3, 15))
        self.assertEqual(late['jours_ecoules'], 28)
        self.assertEqual(late['jours_restants'], 0)
        self.assertEqual(late['budget_journalier_restant'], Decimal('2100.00'))

    def test_summary_overspending(self):
        cycle = ledger.create_cycle(self.user.id, 500, 2026, 5, 800)
        summary = stats.monthly_summary(cycle.id, today=date(2026, 5, 1))
        self.assertTrue(summary['depassement'])
        self.assertEqual(summary['reste'], Decimal('-300'))

    def test_category_breakdown(self):
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        self.add_expense(cycle, 30, 'Courses')
        self.add_expense(cycle, 20, 'Courses')
        self.add_expense(cycle, 50, 'Transport')

        breakdown = stats.category_breakdown(cycle.id)

        self.assertEqual([(g['category_name'], g['total'], g['pourcentage'], g['nombre']) for g in breakdown],
                         [('Courses', Decimal('50'), 50.0, 2), ('Transport', Decimal('50'), 50.0, 1)])
        self.assertEqual(len(stats.top_categories(cycle.id, limit=1)), 1)

    def test_breakdown_budget_exceeded(self):
        capped = categories.create_category(self.user.id, 'Cafea', 'expense', budget_max=20)
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        expenses.create_expense(self.user.id, cycle.id, 25, capped.id)
        self.add_expense(cycle, 10)

        groups = {g['category_name']: g for g in stats.category_breakdown(cycle.id)}
        self.assertTrue(groups['Cafea']['exceeded'])
        self.assertFalse(groups['Courses']['exceeded'])

    def test_compare_with_zero_baseline(self):
        previous = ledger.create_cycle(self.user.id, 3000, 2026, 4)
        ledger.close_cycle(previous.id)
        current = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        self.add_expense(current, 200)

        comparison = stats.compare_cycles(current.id, previous.id)
        self.assertEqual(comparison['variation_depenses'], 0)

    def test_compare_categories(self):
        previous = ledger.create_cycle(self.user.id, 3000, 2026, 4)
        self.add_expense(previous, 100, 'Courses')
        self.add_expense(previous, 100, 'Transport')
        self.add_expense(previous, 100, 'Loisirs')
        ledger.close_cycle(previous.id)

        current = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        self.add_expense(current, 150, 'Courses')
        self.add_expense(current, 60, 'Transport')
        self.add_expense(current, 102, 'Loisirs')

        comparison = stats.compare_cycles(current.id, previous.id)
        self.assertEqual(comparison['variation_depenses'], 4.0)
        self.assertEqual([(c['category_name'], c['variation']) for c in comparison['categories_en_hausse']],
                         [('Courses', 50.0)])
        self.assertEqual([(c['category_name'], c['variation']) for c in comparison['categories_en_baisse']],
                         [('Transport', 40.0)])

    def test_evolution_oldest_first(self):
        # ordinea inserarii difera de ordinea cronologica
        for month in (3, 1, 2):
            cycle = ledger.create_cycle(self.user.id, 1000, 2026, month)
            if month != 2:
                ledger.close_cycle(cycle.id)

        series = stats.evolution(self.user.id, 3)
        self.assertEqual([(e['annee'], e['month']) for e in series], [(2026, 1), (2026, 2), (2026, 3)])
        self.assertEqual(series[0]['mois'], 'Janvier')
        self.assertEqual([e['month'] for e in stats.evolution(self.user.id, 2)], [2, 3])

    def test_dashboard(self):
        self.assertIsNone(stats.dashboard(self.user.id)['cycle'])

        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        charges.create_charge(self.user.id, 'Chirie', 650, self.category('Loyer').id)
        for amount in range(1, 8):
            self.add_expense(cycle, amount)

        data = stats.dashboard(self.user.id)
        self.assertEqual(data['cycle']['id'], cycle.id)
        self.assertEqual(data['total_charges_actives'], Decimal('650'))
        self.assertEqual(len(data['recent_expenses']), 5)
        self.assertEqual(data['categories'][0]['nombre'], 7)


class ApiTestCase(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.client = self.app.test_client()

    def login(self, identifier='ana', password='Parola123'):
        return self.client.post('/api/login', json={'identifier': identifier, 'password': password})

    def test_register_and_login(self):
        response = self.client.post('/api/register', json={
            'email': 'Maria@Example.com', 'username': 'maria',
            'password': 'Parola123', 'password2': 'Parola123'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['email'], 'maria@example.com')

        duplicate = self.client.post('/api/register', json={
            'email': 'maria@example.com', 'username': 'maria2',
            'password': 'Parola123', 'password2': 'Parola123'})
        self.assertEqual(duplicate.status_code, 422)
        self.assertIn('email', duplicate.get_json()['errors'])

        self.assertEqual(self.login('maria@example.com').status_code, 200)
        self.assertEqual(self.client.post('/api/logout').status_code, 204)

    def test_bad_login(self):
        response = self.login(password='gresita')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.content_type, 'application/problem+json')

    def test_login_required(self):
        response = self.client.get('/api/cycles')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['status'], 401)

    def test_cycle_flow(self):
        self.login()
        self.client.post('/api/incomes', json={'name': 'Salariu', 'amount': 3000, 'start_date': '2025-01-01'})
        charge = self.client.post('/api/charges', json={
            'name': 'Chirie', 'amount': 800, 'category_id': self.category('Loyer').id})
        self.assertEqual(charge.status_code, 201)
        self.assertTrue(charge.get_json()['active'])

        # venitul si sarcinile lipsa sunt luate din datele utilizatorului
        response = self.client.post('/api/cycles', json={'year': 2026, 'month': 5})
        self.assertEqual(response.status_code, 201)
        cycle = response.get_json()
        self.assertEqual(Decimal(cycle['income']), Decimal('3000'))
        self.assertEqual(Decimal(cycle['total_charges']), Decimal('800'))

        duplicate = self.client.post('/api/cycles', json={'year': 2026, 'month': 5, 'income': 100})
        self.assertEqual(duplicate.status_code, 409)

        expense = self.client.post(f"/api/cycles/{cycle['id']}/expenses", json={
            'amount': 450, 'category_id': self.category('Courses').id,
            'date': '2026-05-03', 'tags': ['bio']})
        self.assertEqual(expense.status_code, 201)
        expense_id = expense.get_json()['id']
        self.assertEqual(expense.get_json()['tags'], ['bio'])

        patched = self.client.patch(f'/api/expenses/{expense_id}', json={'amount': 400})
        self.assertEqual(patched.status_code, 200)
        current = self.client.get(f"/api/cycles/{cycle['id']}").get_json()
        self.assertEqual(Decimal(current['reste']), Decimal('1800'))

        listed = self.client.get(f"/api/cycles/{cycle['id']}/expenses?q=bio").get_json()
        self.assertEqual([e['id'] for e in listed], [expense_id])

        closed = self.client.post(f"/api/cycles/{cycle['id']}/close", json={'rollover': True})
        self.assertEqual(closed.status_code, 200)
        body = closed.get_json()
        self.assertEqual(body['cycle']['status'], 'closed')
        self.assertEqual(body['next_cycle']['month'], 6)
        self.assertEqual(Decimal(body['next_cycle']['income']), Decimal('3000'))

        again = self.client.post(f"/api/cycles/{cycle['id']}/close", json={})
        self.assertEqual(again.status_code, 409)

        evolution = self.client.get('/api/stats/evolution?months=2').get_json()
        self.assertEqual([e['month'] for e in evolution], [5, 6])

    def test_zero_income_is_accepted(self):
        self.login()
        response = self.client.post('/api/cycles', json={'year': 2026, 'month': 5, 'income': 0,
                                                         'initial_charges': 0})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.get_json()['income']), Decimal('0'))

    def test_oversized_amounts_return_422(self):
        self.login()
        response = self.client.post('/api/cycles', json={'year': 2026, 'month': 5, 'income': '1e30'})
        self.assertEqual(response.status_code, 422)
        self.assertIn('income', response.get_json()['errors'])

        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        response = self.client.post(f'/api/cycles/{cycle.id}/expenses', json={
            'amount': '1e30', 'category_id': self.category('Courses').id})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(Expense.query.count(), 0)

    def test_patch_cycle(self):
        self.login()
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5, 800)

        response = self.client.patch(f'/api/cycles/{cycle.id}', json={'reste': 5})
        self.assertEqual(response.status_code, 422)

        response = self.client.patch(f'/api/cycles/{cycle.id}', json={'income': 'abc'})
        self.assertEqual(response.status_code, 422)
        self.assertIn('income', response.get_json()['errors'])

        response = self.client.patch(f'/api/cycles/{cycle.id}', json={'income': 3200, 'currency': 'usd'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.get_json()['reste']), Decimal('2400'))
        self.assertEqual(response.get_json()['currency'], 'USD')

    def test_other_user_data_is_hidden(self):
        other = self.make_user('ion', 'ion@example.com')
        cycle = ledger.create_cycle(other.id, 1000, 2026, 5)
        self.login()

        self.assertEqual(self.client.get(f'/api/cycles/{cycle.id}').status_code, 404)
        self.assertEqual(self.client.post(f'/api/cycles/{cycle.id}/expenses', json={
            'amount': 10, 'category_id': self.category('Courses').id}).status_code, 404)
        self.assertEqual(self.client.delete(f'/api/cycles/{cycle.id}').status_code, 404)

    def test_stats_endpoints(self):
        self.login()
        cycle = ledger.create_cycle(self.user.id, 3000, 2026, 5)
        self.add_expense(cycle, 30)
        self.add_expense(cycle, 20, 'Transport')

        summary = self.client.get(f'/api/cycles/{cycle.id}/stats')
        self.assertEqual(summary.status_code, 200)
        self.assertIn('taux_epargne', summary.get_json())

        top = self.client.get(f'/api/cycles/{cycle.id}/categories?limit=1').get_json()
        self.assertEqual([g['category_name'] for g in top], ['Courses'])

        dashboard = self.client.get('/api/dashboard').get_json()
        self.assertEqual(dashboard['cycle']['id'], cycle.id)

    def test_charges_and_categories_endpoints(self):
        self.login()
        created = self.client.post('/api/categories', json={'name': 'Abonamente', 'type': 'charge',
                                                            'color': '#123456'})
        self.assertEqual(created.status_code, 201)
        category_id = created.get_json()['id']

        bad = self.client.post('/api/categories', json={'name': 'X', 'type': 'income'})
        self.assertEqual(bad.status_code, 422)

        charge = self.client.post('/api/charges', json={'name': 'Netflix', 'amount': 12,
                                                        'category_id': category_id, 'active': False})
        self.assertFalse(charge.get_json()['active'])
        toggled = self.client.post(f"/api/charges/{charge.get_json()['id']}/toggle", json={})
        self.assertTrue(toggled.get_json()['active'])
        self.assertEqual(Decimal(self.client.get('/api/charges/total').get_json()['total']), Decimal('12'))

        default_only = self.client.get('/api/categories?scope=default').get_json()
        self.assertEqual(len(default_only), 10)
        self.assertEqual(self.client.delete(f'/api/categories/{self.category("Divers").id}').status_code, 422)


if __name__ == '__main__':
    unittest.main()
