"""Authentication helper utilities used by routes."""
from __future__ import annotations

from functools import wraps
from typing import Optional

from flask import g, jsonify, session

from models import db, User


def login_user(user: User) -> None:
    session['user_id'] = user.id
    session['is_admin'] = bool(user.is_admin)
    g._cached_user = user


def logout_user() -> None:
    session.pop('user_id', None)
    session.pop('is_admin', None)
    g.pop('_cached_user', None)


def get_current_user() -> Optional[User]:
    if hasattr(g, '_cached_user'):
        return g._cached_user
    user_id = session.get('user_id')
    user = db.session.get(User, user_id) if user_id else None
    g._cached_user = user
    return user


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if get_current_user() is None:
            return jsonify({'message': 'Unauthorized'}), 401
        return view(*args, **kwargs)

    return wrapped


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        user = get_current_user()
        if user is None or not user.is_admin:
            return jsonify({'message': 'Forbidden'}), 403
        return view(*args, **kwargs)

    return wrapped
