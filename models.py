import datetime
from datetime import timezone
from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy instance (initialized by app)
db = SQLAlchemy()


class BorrowStatus:
    PENDING = 'pending'
    RETURNED = 'returned'


def _isoformat(value):
    if value is None:
        return None
    # SQLite hands timestamps back naive; they are stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    phone = db.Column(db.String(30), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'isAdmin': bool(self.is_admin),
            'phone': self.phone,
        }


class Book(db.Model):
    __tablename__ = 'books'
    __table_args__ = (db.CheckConstraint('quantity >= 0', name='ck_books_quantity_non_negative'),)

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    isbn = db.Column(db.String(32), nullable=False)
    authors = db.Column(db.String(255), nullable=False)
    genre = db.Column(db.String(80), nullable=False)
    pages = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    language = db.Column(db.String(40), nullable=False)
    publisher = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    cover_image = db.Column(db.String(500), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'isbn': self.isbn,
            'authors': self.authors,
            'genre': self.genre,
            'pages': self.pages,
            'year': self.year,
            'language': self.language,
            'publisher': self.publisher,
            'description': self.description,
            'quantity': self.quantity,
            'coverImage': self.cover_image,
        }


class Borrow(db.Model):
    __tablename__ = 'borrows'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    book_id = db.Column(db.Integer, db.ForeignKey('books.id'), nullable=False, index=True)
    user = db.relationship('User', backref=db.backref('borrows', lazy=True))
    book = db.relationship('Book', backref=db.backref('borrows', lazy=True))
    # use timezone-aware UTC timestamps
    borrow_date = db.Column(db.DateTime(timezone=True), nullable=False,
                            default=lambda: datetime.datetime.now(timezone.utc))
    # planned return date until the borrow is returned, then the actual one
    return_date = db.Column(db.DateTime(timezone=True), nullable=False)
    borrow_key = db.Column(db.String(64), unique=True, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=BorrowStatus.PENDING)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'bookId': self.book_id,
            'borrowDate': _isoformat(self.borrow_date),
            'returnDate': _isoformat(self.return_date),
            'borrowKey': self.borrow_key,
            'status': self.status,
        }
