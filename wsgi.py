#!/usr/bin/env python3
"""
FarmSense Production Startup Script
Initializes the database, optionally seeds and simulates, and exposes `app` for gunicorn.
"""
import os
import sys

# Add the app directory to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app import create_app, init_db, seed_demo_data, SELECTOR_KEY
from simulator import Simulator

app = create_app()

print("Initializing database...")
init_db(app)

# Optionally seed demo data (set SEED_DEMO=true in environment)
if app.config['SEED_DEMO']:
    print("Seeding demo data...")
    seed_demo_data(app)

simulator = None
if app.config['SIMULATION_ENABLED']:
    simulator = Simulator(
        app,
        selector=app.extensions[SELECTOR_KEY],
        mode=app.config['SIMULATION_MODE'],
        interval_seconds=app.config['SIMULATION_INTERVAL_SECONDS']
    )
    simulator.start()

print("FarmSense startup complete. Ready for gunicorn.")
