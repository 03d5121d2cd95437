#!/usr/bin/env python3
"""
Create the database tables, optionally dropping them first.
Usage:
  python db.py [--reset] [--db-uri URI]
"""
import argparse
import sys

from app import create_app
from models import db


def main(argv=None):
    parser = argparse.ArgumentParser(description='Initialize the library database')
    parser.add_argument('--reset', action='store_true', help='drop all tables before creating them')
    parser.add_argument('--db-uri', help='optional DB URI to override app config')
    args = parser.parse_args(argv)

    config = {}
    if args.db_uri:
        config['SQLALCHEMY_DATABASE_URI'] = args.db_uri

    app = create_app(config)
    with app.app_context():
        if args.reset:
            db.drop_all()
            print('Dropped existing tables')
        db.create_all()
        print(f"Initialized database ({app.config['SQLALCHEMY_DATABASE_URI']})")
    return 0


if __name__ == '__main__':
    sys.exit(main())
