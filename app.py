# app.py
"""
Event ticketing backend entry point.

    gunicorn app:app        # production
    python app.py           # local development

Configuration comes from the environment; see ticketing/config.py.
"""
from ticketing import create_app
from ticketing.config import Settings

settings = Settings.from_env()
app = create_app(settings)


if __name__ == "__main__":
    app.run(host=settings.host, port=settings.port, debug=settings.debug)
