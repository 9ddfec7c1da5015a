from money_tracker import create_app

# cream aplicatia folosind factory
app = create_app()

if __name__ == '__main__':
    app.logger.info(f"Baza de date: {app.config['SQLALCHEMY_DATABASE_URI']}")
    # pornim serverul in modul debug doar in dezvoltare
    app.run(debug=app.config['DEBUG'])
