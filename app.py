from __future__ import annotations

import datetime
import os

from flask import Flask, g, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from config import BaseConfig, config_by_name
from models import Book, Borrow, User, db
from services.auth import (
    admin_required,
    get_current_user,
    login_required,
    login_user,
    logout_user,
)
from services.borrowing import BorrowService
from services.errors import BorrowServiceError, InvalidState, NotFound, StoreFailure, Unavailable
from services.returning import ReturnService
from services.store import SqlAlchemyStore, use_immediate_transactions
from services.tokens import generate_borrow_key

ERROR_STATUS = {
    NotFound: 404,
    Unavailable: 409,
    InvalidState: 409,
    StoreFailure: 503,
}

# payload key -> (column, type)
BOOK_FIELDS = {
    'title': ('title', str),
    'isbn': ('isbn', str),
    'authors': ('authors', str),
    'genre': ('genre', str),
    'pages': ('pages', int),
    'year': ('year', int),
    'language': ('language', str),
    'publisher': ('publisher', str),
    'description': ('description', str),
    'quantity': ('quantity', int),
    'coverImage': ('cover_image', str),
}


def _load_config(app: Flask, config_name: str | None, test_config: dict | None) -> None:
    resolved_name = config_name or os.environ.get('FLASK_CONFIG', 'development')
    config_cls = config_by_name.get(resolved_name, BaseConfig)
    app.config.from_object(config_cls)
    if test_config:
        app.config.update(test_config)


def parse_timestamp(raw_value) -> datetime.datetime | None:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if not raw_value or not isinstance(raw_value, str):
        return None
    try:
        parsed = datetime.datetime.fromisoformat(raw_value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def json_object() -> dict | None:
    """Request JSON as a dict; ``{}`` when absent, ``None`` when not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def text_field(data: dict, key: str) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ''


def parse_int(raw, name: str) -> int:
    # int(True) and int(1.9) would silently pass
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValueError(f'{name} must be an integer')
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f'{name} must be an integer') from None


def parse_book_payload(data: dict, partial: bool = False) -> dict:
    values = {}
    for key, (column, kind) in BOOK_FIELDS.items():
        if key not in data:
            if partial:
                continue
            raise ValueError(f'{key} is required')
        raw = data[key]
        if kind is int:
            value = parse_int(raw, key)
        else:
            if not isinstance(raw, str) or not raw.strip():
                raise ValueError(f'{key} must be a non-empty string')
            value = raw.strip()
        values[column] = value
    if values.get('quantity', 0) < 0:
        raise ValueError('quantity must not be negative')
    return values


def create_app(config_name: str | None = None, test_config: dict | None = None):
    if isinstance(config_name, dict) and test_config is None:
        test_config = config_name
        config_name = None
    app = Flask(__name__)
    _load_config(app, config_name, test_config)
    app.logger.setLevel(app.config['LOG_LEVEL'])
    db.init_app(app)
    with app.app_context():
        if app.config['SQLITE_IMMEDIATE_TRANSACTIONS'] and db.engine.dialect.name == 'sqlite':
            use_immediate_transactions(db.engine)

    store = SqlAlchemyStore(db.session, logger=app.logger)
    borrow_service = BorrowService(
        store,
        key_factory=lambda: generate_borrow_key(app.config['BORROW_KEY_LENGTH']),
        logger=app.logger,
    )
    return_service = ReturnService(store, logger=app.logger)

    @app.before_request
    def bind_current_user():
        # g outlives the request when an app context is already pushed
        g.pop('_cached_user', None)
        g.current_user = get_current_user()

    @app.after_request
    def set_security_headers(response):
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('Referrer-Policy', 'no-referrer-when-downgrade')
        return response

    @app.errorhandler(BorrowServiceError)
    def handle_borrow_error(exc: BorrowServiceError):
        return jsonify({'message': str(exc)}), ERROR_STATUS.get(type(exc), 400)

    @app.route('/api/register', methods=['POST'])
    def register():
        data = json_object()
        if data is None:
            return jsonify({'message': 'Request body must be a JSON object'}), 400
        username = text_field(data, 'username')
        password = data.get('password') if isinstance(data.get('password'), str) else ''
        phone = text_field(data, 'phone')
        if not username or not password or not phone:
            return jsonify({'message': 'username, password and phone are required'}), 400
        if User.query.filter_by(username=username).first():
            return jsonify({'message': 'Username already exists'}), 400
        user = User(
            username=username,
            password_hash=generate_password_hash(password),
            is_admin=False,
            phone=phone,
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return jsonify({'message': 'Username already exists'}), 400
        login_user(user)
        app.logger.info('Registered user %s', username)
        return jsonify(user.to_dict()), 201

    @app.route('/api/login', methods=['POST'])
    def login():
        data = json_object()
        if data is None:
            return jsonify({'message': 'Request body must be a JSON object'}), 400
        username = text_field(data, 'username')
        password = data.get('password') if isinstance(data.get('password'), str) else ''
        user = User.query.filter_by(username=username).first() if username else None
        if user and check_password_hash(user.password_hash, password):
            login_user(user)
            return jsonify(user.to_dict())
        return jsonify({'message': 'Invalid username or password'}), 401

    @app.route('/api/logout', methods=['POST'])
    def logout():
        logout_user()
        return jsonify({'message': 'Logged out'})

    @app.route('/api/user')
    @login_required
    def current_user():
        return jsonify(g.current_user.to_dict())

    @app.route('/api/users')
    @admin_required
    def list_users():
        return jsonify([u.to_dict() for u in User.query.order_by(User.username).all()])

    @app.route('/api/books', methods=['GET'])
    def list_books():
        return jsonify([b.to_dict() for b in Book.query.order_by(Book.id).all()])

    @app.route('/api/books/<int:book_id>', methods=['GET'])
    def get_book(book_id: int):
        book = db.session.get(Book, book_id)
        if not book:
            return jsonify({'message': 'Book not found'}), 404
        return jsonify(book.to_dict())

    @app.route('/api/books', methods=['POST'])
    @admin_required
    def create_book():
        data = json_object()
        if data is None:
            return jsonify({'message': 'Request body must be a JSON object'}), 400
        try:
            values = parse_book_payload(data)
        except ValueError as exc:
            return jsonify({'message': str(exc)}), 400
        book = Book(**values)
        db.session.add(book)
        db.session.commit()
        app.logger.info('Added book %s (%s)', book.id, book.title)
        return jsonify(book.to_dict()), 201

    @app.route('/api/books/<int:book_id>', methods=['PATCH'])
    @admin_required
    def update_book(book_id: int):
        book = db.session.get(Book, book_id)
        if not book:
            return jsonify({'message': 'Book not found'}), 404
        data = json_object()
        if data is None:
            return jsonify({'message': 'Request body must be a JSON object'}), 400
        try:
            values = parse_book_payload(data, partial=True)
        except ValueError as exc:
            return jsonify({'message': str(exc)}), 400
        for column, value in values.items():
            setattr(book, column, value)
        db.session.commit()
        return jsonify(book.to_dict())

    @app.route('/api/books/<int:book_id>', methods=['DELETE'])
    @admin_required
    def delete_book(book_id: int):
        book = db.session.get(Book, book_id)
        if not book:
            return jsonify({'message': 'Book not found'}), 404
        # borrows go with the book, pending or not
        Borrow.query.filter_by(book_id=book.id).delete()
        db.session.delete(book)
        db.session.commit()
        app.logger.info('Deleted book %s', book_id)
        return '', 204

    @app.route('/api/borrows', methods=['GET'])
    @login_required
    def list_borrows():
        with store.transaction() as tx:
            items = [b.to_dict() for b in tx.borrows.list_for_user(g.current_user.id)]
        return jsonify(items)

    @app.route('/api/borrows', methods=['POST'])
    @login_required
    def create_borrow():
        data = json_object()
        if data is None:
            return jsonify({'message': 'Request body must be a JSON object'}), 400
        try:
            book_id = parse_int(data.get('bookId'), 'bookId')
        except ValueError as exc:
            return jsonify({'message': str(exc)}), 400
        borrow_date = parse_timestamp(data.get('borrowDate'))
        return_date = parse_timestamp(data.get('returnDate'))
        if borrow_date is None or return_date is None:
            return jsonify({'message': 'borrowDate and returnDate must be ISO 8601 timestamps'}), 400
        borrow = borrow_service.borrow(g.current_user.id, book_id, borrow_date, return_date)
        return jsonify(borrow.to_dict()), 201

    @app.route('/api/borrows/<int:borrow_id>/return', methods=['POST'])
    @login_required
    def return_borrow(borrow_id: int):
        user = g.current_user
        borrow = db.session.get(Borrow, borrow_id)
        if borrow and borrow.user_id != user.id and not user.is_admin:
            return jsonify({'message': 'Forbidden'}), 403
        return_service.return_borrow(borrow_id)
        return '', 204

    @app.route('/api/borrows/key/<borrow_key>', methods=['GET'])
    @admin_required
    def lookup_borrow(borrow_key: str):
        with store.transaction() as tx:
            borrow = tx.borrows.get_by_key(borrow_key)
            if borrow is None:
                raise NotFound('No borrow matches this key.')
            payload = borrow.to_dict()
            payload['book'] = borrow.book.to_dict() if borrow.book else None
            payload['user'] = {
                'id': borrow.user.id,
                'username': borrow.user.username,
                'phone': borrow.user.phone,
            } if borrow.user else None
        return jsonify(payload)

    return app


if __name__ == '__main__':
    application = create_app()
    with application.app_context():
        db.create_all()
    application.run(debug=True)
