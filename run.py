"""
Development entry point.

    flask --app run.py --debug run
    flask --app run.py create-admin --username admin --email admin@example.com
"""

from projectflow import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
