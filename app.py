"""
FarmSense - Livestock Monitoring Dashboard
Flask Backend Server with SQLAlchemy ORM

Serves the current vital and reproductive state of the herd, enriched with
derived health alerts and the critical-condition selection.
"""

from flask import Flask, Blueprint, request, jsonify, render_template, current_app
from dotenv import load_dotenv
from datetime import date, datetime, timezone
from typing import Optional
import os

from models import (
    db, Animal, AnimalNotFound,
    get_all_animals, get_animal, create_animal, update_animal,
)
from alert_engine import derive_alerts, alert_level
from critical_selector import CriticalSelector

load_dotenv()

SERVICE_NAME = 'FarmSense Backend'
SERVICE_VERSION = '1.0.0'

SELECTOR_KEY = 'critical_selector'


# ============================================================================
# APPLICATION CONFIGURATION
# ============================================================================

def env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def load_config() -> dict:
    """Read service configuration from the environment."""
    return {
        'SECRET_KEY': os.environ.get('SECRET_KEY', 'farmsense-dev-secret-key-change-in-production'),
        'SQLALCHEMY_DATABASE_URI': os.environ.get('DATABASE_URL', 'sqlite:///farmsense.db'),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ECHO': False,  # Set True for SQL debugging
        'SIMULATION_ENABLED': env_flag('SIMULATION_ENABLED'),
        'SIMULATION_MODE': os.environ.get('SIMULATION_MODE', 'full'),
        'SIMULATION_INTERVAL_SECONDS': float(os.environ.get('SIMULATION_INTERVAL_SECONDS', '5')),
        'CRITICAL_HOLD_SECONDS': float(os.environ.get('CRITICAL_HOLD_SECONDS', '60')),
        'PORT': int(os.environ.get('PORT', '5000')),
        'SEED_DEMO': env_flag('SEED_DEMO'),
    }


def create_app(config: Optional[dict] = None, selector: Optional[CriticalSelector] = None) -> Flask:
    """
    Build the Flask application.

    The critical selector is owned by the application; pass one in to share it
    with other components (the simulator receives it the same way).
    """
    app = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)

    db.init_app(app)

    if selector is None:
        selector = CriticalSelector(hold_seconds=app.config['CRITICAL_HOLD_SECONDS'])
    app.extensions[SELECTOR_KEY] = selector

    app.register_blueprint(api)
    app.register_blueprint(web)
    return app


def get_selector() -> CriticalSelector:
    return current_app.extensions[SELECTOR_KEY]


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def parse_iso_date(date_str: str) -> Optional[date]:
    """Parse an ISO 8601 date (a full timestamp is accepted and truncated)."""
    if not date_str:
        return None
    if not isinstance(date_str, str):
        raise ValueError("last_insemination_date must be an ISO 8601 date string")
    if date_str.endswith('Z'):
        date_str = date_str[:-1] + '+00:00'
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        return datetime.fromisoformat(date_str).date()


def parse_animal_payload(data: dict) -> dict:
    """Convert a JSON payload into model field values."""
    fields = dict(data)
    if 'last_insemination_date' in fields:
        fields['last_insemination_date'] = parse_iso_date(fields['last_insemination_date'])
    return fields


def enrich_animal(animal: Animal, critical_id: Optional[str]) -> dict:
    """Animal record plus its derived alerts and critical flag."""
    alerts = derive_alerts(animal, critical_id)
    data = animal.to_dict()
    data['alerts'] = [a.to_dict() for a in alerts]
    data['is_critical'] = critical_id is not None and animal.id == critical_id
    data['alert_level'] = alert_level(alerts)
    return data


def enriched_herd() -> list:
    """Snapshot of the whole herd; runs one critical-selection tick."""
    animals = get_all_animals()
    critical_id = get_selector().evaluate(animals)
    return [enrich_animal(a, critical_id) for a in animals]


# ============================================================================
# API ROUTES - DATA RETRIEVAL
# ============================================================================

api = Blueprint('api', __name__, url_prefix='/api')


@api.route('/animals', methods=['GET'])
def list_animals():
    """
    Full enriched herd snapshot.

    Returns:
        200: JSON array (empty when the herd is empty)
        500: {"error": message} on store failure
    """
    try:
        return jsonify(enriched_herd())
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to read animals: {str(e)}")
        return jsonify({'error': 'Failed to read animal data'}), 500


@api.route('/animals/<animal_id>', methods=['GET'])
def get_animal_detail(animal_id):
    """Single enriched record, using the current selection as-is."""
    try:
        animal = get_animal(animal_id)
        return jsonify(enrich_animal(animal, get_selector().current()))
    except AnimalNotFound as e:
        return jsonify({'error': str(e)}), 404
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to read animal {animal_id}: {str(e)}")
        return jsonify({'error': 'Failed to read animal data'}), 500


# ============================================================================
# API ROUTES - DATA STORE
# ============================================================================

@api.route('/animals', methods=['POST'])
def add_animal():
    """
    Register a new animal.

    Returns:
        201: Created record
        400: Invalid payload
        500: Server error
    """
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return jsonify({'error': 'No JSON payload received'}), 400
    if not data.get('display_id'):
        return jsonify({'error': "Missing required field: display_id"}), 400
    if 'id' in data or 'animal_id' in data:
        return jsonify({'error': 'Animal ids are assigned by the server'}), 400

    try:
        fields = parse_animal_payload(data)
        display_id = fields.pop('display_id')
        animal = create_animal(display_id, **fields)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to create animal: {str(e)}")
        return jsonify({'error': 'Server error'}), 500

    current_app.logger.info(f"Registered animal {animal.display_id} ({animal.id})")
    return jsonify(enrich_animal(animal, get_selector().current())), 201


@api.route('/animals/<animal_id>', methods=['PATCH'])
def patch_animal(animal_id):
    """Partially update one record; `id` cannot be changed."""
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return jsonify({'error': 'No JSON payload received'}), 400

    try:
        animal = update_animal(animal_id, parse_animal_payload(data))
    except AnimalNotFound as e:
        return jsonify({'error': str(e)}), 404
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update animal {animal_id}: {str(e)}")
        return jsonify({'error': 'Server error'}), 500

    return jsonify(enrich_animal(animal, get_selector().current()))


# ============================================================================
# WEB ROUTES - DASHBOARD UI
# ============================================================================

web = Blueprint('web', __name__)


@web.route('/')
def dashboard():
    """Render the card dashboard."""
    try:
        animals = enriched_herd()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Dashboard read failed: {str(e)}")
        return render_template('dashboard.html', animals=[], error='database unavailable'), 500
    return render_template('dashboard.html', animals=animals, error=None)


@web.route('/animals')
def animals_table():
    """Render all records as an HTML table (no alerts)."""
    try:
        animals = get_all_animals()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Table read failed: {str(e)}")
        return "Error fetching animal data", 500
    return render_template('animals.html', animals=animals)


@web.route('/health')
def health_check():
    """Health check endpoint for monitoring."""
    return jsonify({
        'status': 'healthy',
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'timestamp': datetime.now(timezone.utc).isoformat()
    })


# ============================================================================
# DATABASE INITIALIZATION
# ============================================================================

DEMO_HERD = [
    # display_id, stage, pregnancy, days since AI, postpartum days, temp, HR, resp, milk, estrus, health, activity
    ('101', 'Inseminated', 'pregnant', 52, None, 38.6, 68, 24, 22.5, False, 'Healthy', 'Normal'),
    ('102', 'Inseminated', 'open', 24, None, 38.9, 72, 26, 25.1, True, 'Healthy', 'High'),
    ('103', 'Postpartum', 'delivered', None, 5, 40.2, 84, 30, 18.0, False, 'Fever', 'Low'),
    ('104', 'Postpartum', 'delivered', None, 28, 38.7, 70, 25, 31.4, False, 'Healthy', 'Normal'),
    ('105', 'Heifer', 'open', None, None, 38.5, 66, 22, 0.0, True, 'Healthy', 'High'),
    ('106', 'Inseminated', 'pregnant', 120, None, 38.4, 64, 21, 20.2, False, 'Healthy', 'Normal'),
    ('107', 'Lactating', 'open', None, 75, 39.1, 104, 34, 27.8, False, 'Lame', 'Low'),
    ('108', 'Inseminated', 'unknown', 12, None, 38.8, 71, 23, 24.0, False, 'Healthy', 'Normal'),
    ('109', 'Dry', 'pregnant', 230, None, 38.3, 62, 20, 0.0, False, 'Healthy', 'Low'),
    ('110', 'Postpartum', 'delivered', None, 2, 39.4, 88, 28, 15.6, False, 'Recovering', 'Low'),
    ('111', 'Lactating', 'open', None, 140, 38.6, 69, 24, 29.3, False, 'Healthy', 'Normal'),
    ('112', 'Inseminated', 'open', 33, None, 38.7, 74, 25, 23.7, True, 'Healthy', 'High'),
]


def init_db(app: Flask):
    """Initialize the database and create tables."""
    with app.app_context():
        db.create_all()
        print("✓ Database initialized successfully")


def seed_demo_data(app: Flask):
    """Seed the database with a demo herd."""
    with app.app_context():
        if Animal.query.first():
            print("✓ Demo data already exists")
            return

        today = date.today()
        for (display_id, stage, pregnancy, days_ai, postpartum, temp, hr, resp, milk,
             estrus, health, activity) in DEMO_HERD:
            create_animal(
                display_id,
                reproductive_stage=stage,
                pregnancy_status=pregnancy,
                last_insemination_date=date.fromordinal(today.toordinal() - days_ai) if days_ai is not None else None,
                days_since_insemination=days_ai,
                postpartum_days=postpartum,
                temperature_c=temp,
                heart_rate_bpm=hr,
                respiration_bpm=resp,
                milk_yield_liters=milk,
                estrus_detected=estrus,
                health_condition=health,
                activity_level=activity
            )

        print(f"✓ Demo data seeded successfully ({len(DEMO_HERD)} animals)")


# ============================================================================
# APPLICATION ENTRY POINT
# ============================================================================

if __name__ == '__main__':
    import logging
    from simulator import Simulator

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    app = create_app()
    init_db(app)
    seed_demo_data(app)

    if app.config['SIMULATION_ENABLED']:
        simulator = Simulator(
            app,
            selector=app.extensions[SELECTOR_KEY],
            mode=app.config['SIMULATION_MODE'],
            interval_seconds=app.config['SIMULATION_INTERVAL_SECONDS']
        )
        simulator.start()

    port = app.config['PORT']
    print("\n" + "="*60)
    print("  FarmSense - Livestock Monitoring Dashboard")
    print("  Starting Flask Development Server...")
    print("="*60)
    print(f"\n  Dashboard: http://localhost:{port}")
    print(f"  API Endpoint: http://localhost:{port}/api/animals")
    print(f"  Health Check: http://localhost:{port}/health")
    print("\n" + "="*60 + "\n")

    # Reloader would start a second simulator thread
    app.run(debug=True, use_reloader=False, host='0.0.0.0', port=port)
