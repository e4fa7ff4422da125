"""
Vercel Serverless Entry Point

This file serves as the bridge between Vercel's serverless runtime and the Flask application.

Architecture:
- Vercel rewrites every request to /api/* to this file
- The Flask app handles routing via blueprints in app/api/
- Cron jobs (vercel.json) call /api/cron/* with the CRON_SECRET bearer token
"""

from app import create_app

# Create the Flask application instance
app = create_app()

# Vercel requires the app to be exported as 'app' or as a handler function
# The name 'app' is detected automatically by @vercel/python
