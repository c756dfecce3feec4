"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

First run:

    flask --app run.py db init           # once, creates migrations/
    flask --app run.py db migrate
    flask --app run.py db upgrade
    flask --app run.py seed-discounts
    flask --app run.py create-admin --email admin@example.com

"""

from salesdesk import create_app

# WSGI application object. `flask run` looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # Dev only; use a WSGI server in production.
    app.run(debug=True)
