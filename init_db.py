from money_tracker import create_app, db
from money_tracker.models import User, Category
from werkzeug.security import generate_password_hash

# categoriile comune tuturor utilizatorilor (user_id NULL)
DEFAULT_CATEGORIES = [
    # sarcini fixe
    {'name': 'Loyer', 'type': 'charge', 'icon': 'Home', 'color': '#3B82F6'},
    {'name': 'Assurance', 'type': 'charge', 'icon': 'Shield', 'color': '#8B5CF6'},
    {'name': 'Factures', 'type': 'charge', 'icon': 'FileText', 'color': '#EC4899'},
    # cheltuieli variabile
    {'name': 'Courses', 'type': 'expense', 'icon': 'ShoppingCart', 'color': '#10B981'},
    {'name': 'Transport', 'type': 'expense', 'icon': 'Car', 'color': '#F59E0B'},
    {'name': 'Loisirs', 'type': 'expense', 'icon': 'Gamepad2', 'color': '#EF4444'},
    {'name': 'Santé', 'type': 'expense', 'icon': 'Heart', 'color': '#06B6D4'},
    {'name': 'Restaurant', 'type': 'expense', 'icon': 'Utensils', 'color': '#F97316'},
    {'name': 'Vêtements', 'type': 'expense', 'icon': 'Shirt', 'color': '#A855F7'},
    {'name': 'Divers', 'type': 'expense', 'icon': 'MoreHorizontal', 'color': '#64748B'},
]


def seed_default_categories():
    categories = [Category(user_id=None, **data) for data in DEFAULT_CATEGORIES]
    db.session.add_all(categories)
    db.session.commit()
    return categories


def init_db():
    """Inițializează baza de date cu date inițiale"""
    app = create_app()

    with app.app_context():
        # Recreează toate tabelele (șterge dacă există)
        db.drop_all()
        db.create_all()

        categories = seed_default_categories()

        # utilizator demo pentru incercari locale
        demo_user = User(
            username='demo',
            email='demo@example.com',
            password=generate_password_hash('Demo1234')
        )
        db.session.add(demo_user)
        db.session.commit()

        app.logger.info("Baza de date a fost inițializată")
        print("Baza de date a fost inițializată cu succes!")
        print("Utilizator demo creat: demo@example.com / Demo1234")
        print(f"Au fost create {len(categories)} categorii implicite, comune tuturor utilizatorilor.")


if __name__ == "__main__":
    init_db()
