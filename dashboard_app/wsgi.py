# dashboard_app/wsgi.py
# -*- coding: utf-8 -*-
from dashboard_app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=app.config.get("FLASK_DEBUG") == "1")
