from flask import Flask, current_app, jsonify


class LedgerError(Exception):
    """Eroare de baza pentru operatiile asupra ciclurilor, cheltuielilor si sarcinilor fixe"""
    status = 500
    title = 'Internal Server Error'

    def __init__(self, message=None):
        super().__init__(message or self.title)
        self.message = message or self.title


class NotFoundError(LedgerError):
    # ciclul, cheltuiala, sarcina sau categoria ceruta nu exista
    status = 404
    title = 'Not Found'


class DuplicateCycleError(LedgerError):
    # exista deja un ciclu pentru (utilizator, an, luna) sau un ciclu activ
    status = 409
    title = 'Duplicate Cycle'


class ValidationError(LedgerError):
    status = 422
    title = 'Unprocessable Entity'

    def __init__(self, message=None, errors=None):
        super().__init__(message)
        self.errors = errors or {}


class CycleClosedError(ValidationError):
    # ciclul este inchis, nu mai accepta modificari ale totalurilor
    status = 409
    title = 'Cycle Closed'


class StoreError(LedgerError):
    # eroare de I/O de la baza de date
    status = 503
    title = 'Store Unavailable'


def problem(status: int, title: str, detail: str = None, type_: str = "about:blank", **ext):
    payload = {"type": type_, "title": title, "status": status}
    if detail:
        payload["detail"] = detail
    payload.update(ext)
    return jsonify(payload), status, {"Content-Type": "application/problem+json"}


def register_error_handlers(app: Flask):
    @app.errorhandler(LedgerError)
    def ledger_error(e):
        ext = {}
        if isinstance(e, ValidationError) and e.errors:
            ext['errors'] = e.errors
        return problem(e.status, e.title, e.message, **ext)

    @app.errorhandler(400)
    def bad_request(e): return problem(400, "Bad Request", str(e))
    @app.errorhandler(401)
    def unauthorized(e): return problem(401, "Unauthorized", "Autentificare necesara pentru acces")
    @app.errorhandler(403)
    def forbidden(e): return problem(403, "Forbidden", str(e))
    @app.errorhandler(404)
    def notfound(e): return problem(404, "Not Found", str(e))
    @app.errorhandler(405)
    def not_allowed(e): return problem(405, "Method Not Allowed", str(e))
    @app.errorhandler(429)
    def too_many(e): return problem(429, "Too Many Requests", str(e))

    @app.errorhandler(500)
    def server(e):
        # rollback la sesiune pentru a curata tranzactiile esuate
        from . import db
        db.session.rollback()
        return problem(500, "Internal Server Error", "Unexpected server error")


def store_failure(action, error):
    """Rollback, logare si conversia unei erori SQLAlchemy in StoreError"""
    from . import db
    db.session.rollback()
    current_app.logger.error(f"Eroare la {action}: {str(error)}")
    return StoreError(f"Eroare la {action}.")
