"""Development runner for the car rental engine.

    # Initialise the database
    python app.py --init-db

    # Start the development server
    python app.py

The JSON API is then available under http://localhost:5000/api/.
Set DATABASE_URL to point at another database.
"""

import argparse

from carrental import create_app, db

app = create_app()


def init_db():
    """Initialise the database tables."""
    db.create_all()
    print("Database initialised.")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Car rental contract engine")
    parser.add_argument('--init-db', action='store_true', help='Initialise the database')
    args = parser.parse_args()
    if args.init_db:
        with app.app_context():
            init_db()
    else:
        app.run(debug=True)
