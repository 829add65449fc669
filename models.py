"""
FarmSense - Data Store
SQLAlchemy model and helpers for the per-animal vital sign records.

Each animal has exactly one current record; every update overwrites it.
"""

from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
import logging
import uuid

logger = logging.getLogger(__name__)

db = SQLAlchemy()


# ============================================================================
# PHYSIOLOGICAL BOUNDS
# ============================================================================

VITAL_BOUNDS = {
    'temperature_c': (36.5, 42.0),     # °C
    'heart_rate_bpm': (40, 120),       # beats per minute
    'respiration_bpm': (15, 40),       # breaths per minute
    'milk_yield_liters': (0.0, 50.0),  # liters per day
}


class AnimalNotFound(LookupError):
    """Raised when no record exists for the requested identifier."""

    def __init__(self, animal_id):
        super().__init__(f"Animal {animal_id} not found")
        self.animal_id = animal_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_animal_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# DATABASE MODELS
# ============================================================================

class Animal(db.Model):
    """
    Current vital and reproductive state of a single animal.
    `id` is assigned on creation and never changes; `display_id` is the ear tag.
    """
    __tablename__ = 'animals'

    id = db.Column(db.String(36), primary_key=True, default=new_animal_id)
    display_id = db.Column(db.String(50), nullable=False, index=True)

    # Reproductive state
    reproductive_stage = db.Column(db.String(50), nullable=True)
    pregnancy_status = db.Column(db.String(50), nullable=True)
    last_insemination_date = db.Column(db.Date, nullable=True)
    days_since_insemination = db.Column(db.Integer, nullable=True)
    postpartum_days = db.Column(db.Integer, nullable=True)
    estrus_detected = db.Column(db.Boolean, default=False)

    # Vital signs
    temperature_c = db.Column(db.Float, nullable=True)
    heart_rate_bpm = db.Column(db.Integer, nullable=True)
    respiration_bpm = db.Column(db.Integer, nullable=True)
    milk_yield_liters = db.Column(db.Float, nullable=True)

    # Observations
    health_condition = db.Column(db.String(50), nullable=True)
    activity_level = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    last_updated = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'display_id': self.display_id,
            'reproductive_stage': self.reproductive_stage,
            'last_insemination_date': self.last_insemination_date.isoformat() if self.last_insemination_date else None,
            'days_since_insemination': self.days_since_insemination,
            'postpartum_days': self.postpartum_days,
            'pregnancy_status': self.pregnancy_status,
            'temperature_c': self.temperature_c,
            'heart_rate_bpm': self.heart_rate_bpm,
            'respiration_bpm': self.respiration_bpm,
            'activity_level': self.activity_level,
            'milk_yield_liters': self.milk_yield_liters,
            'estrus_detected': bool(self.estrus_detected),
            'health_condition': self.health_condition,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None
        }


# Columns a caller may write; `id` and bookkeeping timestamps are excluded.
WRITABLE_FIELDS = frozenset(
    column.name for column in Animal.__table__.columns
    if column.name not in ('id', 'created_at', 'last_updated')
)

CATEGORY_FIELDS = ('reproductive_stage', 'pregnancy_status', 'health_condition', 'activity_level')


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def validate_fields(fields: dict) -> dict:
    """Reject immutable, unknown and out-of-range fields."""
    if 'id' in fields:
        raise ValueError("Field 'id' is immutable")

    unknown = sorted(set(fields) - WRITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(unknown)}")

    for name, (low, high) in VITAL_BOUNDS.items():
        value = fields.get(name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name} must be a number")
        if not low <= value <= high:
            raise ValueError(f"{name} must be between {low} and {high}")

    for name in ('days_since_insemination', 'postpartum_days'):
        value = fields.get(name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ValueError(f"{name} must be a non-negative integer")

    if 'estrus_detected' in fields and not isinstance(fields['estrus_detected'], bool):
        raise ValueError("estrus_detected must be a boolean")

    if 'display_id' in fields:
        display_id = fields['display_id']
        if not isinstance(display_id, str) or not display_id.strip():
            raise ValueError("display_id must be a non-empty string")

    for name in CATEGORY_FIELDS:
        value = fields.get(name)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{name} must be a string")

    return fields


def get_all_animals() -> list:
    """Return every stored animal, ordered by display tag."""
    return Animal.query.order_by(Animal.display_id, Animal.id).all()


def get_animal(animal_id: str) -> Animal:
    animal = db.session.get(Animal, animal_id)
    if animal is None:
        raise AnimalNotFound(animal_id)
    return animal


def create_animal(display_id: str, **fields) -> Animal:
    """Create a new record under a freshly generated identifier."""
    validate_fields(dict(fields, display_id=display_id))
    animal = Animal(id=new_animal_id(), display_id=display_id, **fields)
    animal.last_updated = utcnow()
    db.session.add(animal)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.debug("Created animal %s (%s)", animal.id, display_id)
    return animal


def update_animal(animal_id: str, fields: dict) -> Animal:
    """
    Apply a partial update to one record in a single commit.

    Either every field is written or none is: failures roll the session back.
    """
    validate_fields(fields)
    animal = get_animal(animal_id)
    try:
        for name, value in fields.items():
            setattr(animal, name, value)
        animal.last_updated = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return animal
