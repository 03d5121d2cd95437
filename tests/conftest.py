import datetime

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from models import Book, User, db

BORROW_DATE = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
RETURN_DATE = datetime.datetime(2024, 1, 15, tzinfo=datetime.timezone.utc)

BOOK_DEFAULTS = {
    'title': 'The Left Hand of Darkness',
    'isbn': '9780441478125',
    'authors': 'Ursula K. Le Guin',
    'genre': 'Science Fiction',
    'pages': 304,
    'year': 1969,
    'language': 'English',
    'publisher': 'Ace Books',
    'description': 'An envoy visits the planet Gethen.',
    'cover_image': 'https://example.com/covers/lhod.jpg',
}


@pytest.fixture
def app():
    app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
    with app.app_context():
        db.create_all()
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_book(app):
    def _make_book(quantity=1, **fields):
        values = dict(BOOK_DEFAULTS, quantity=quantity)
        values.update(fields)
        book = Book(**values)
        db.session.add(book)
        db.session.commit()
        return book.id

    return _make_book


@pytest.fixture
def make_user(app):
    def _make_user(username, password='secret', is_admin=False):
        user = User(
            username=username,
            password_hash=generate_password_hash(password),
            is_admin=is_admin,
            phone='555-0100',
        )
        db.session.add(user)
        db.session.commit()
        return user.id

    return _make_user
