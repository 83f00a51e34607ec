"""
BloodLife - Blood Bank Matching Service
Flask entry point: JSON API over the donor/request/inventory engine

Run with:  flask --app app run   (or: python app.py)
Seed data: flask --app app init-db
"""

from bloodlife.web import create_app

app = create_app()

# ============== MAIN ==============

if __name__ == '__main__':
    # single-threaded: operations run one at a time against the store
    app.run(debug=True, host='0.0.0.0', port=5000, threaded=False)
