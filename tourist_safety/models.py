import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.dialects.postgresql import JSONB, UUID

from .extensions import bcrypt, db


def utcnow():
    """Naive UTC timestamp, stored identically on Postgres and SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() + 'Z' if value else None


JSONType = db.JSON().with_variant(JSONB(), 'postgresql')


def _enum(enum_cls, name):
    return db.Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


# --- ENUMS ---

class UserRole(Enum):
    TOURIST = 'tourist'
    POLICE = 'police'
    ADMIN = 'admin'


class UserStatus(Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    SUSPENDED = 'suspended'


class AlertType(Enum):
    PANIC = 'panic'
    MEDICAL = 'medical'
    SECURITY = 'security'
    GEOFENCE_VIOLATION = 'geofence_violation'
    NATURAL_DISASTER = 'natural_disaster'


class AlertSeverity(Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'


class AlertStatus(Enum):
    ACTIVE = 'active'
    INVESTIGATING = 'investigating'
    RESOLVED = 'resolved'
    FALSE_ALARM = 'false_alarm'


class GeofenceType(Enum):
    SAFE = 'safe'
    RESTRICTED = 'restricted'
    EMERGENCY = 'emergency'
    WARNING = 'warning'


STAFF_ROLES = ('police', 'admin')


# --- MODELS ---

class Tourist(db.Model):
    __tablename__ = 'tourists'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.Text, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    country = db.Column(db.String(100), nullable=False)
    phone_number = db.Column(db.String(50))
    emergency_contact = db.Column(JSONType)
    role = db.Column(_enum(UserRole, 'user_role'), nullable=False, default=UserRole.TOURIST, index=True)
    status = db.Column(_enum(UserStatus, 'user_status'), nullable=False, default=UserStatus.ACTIVE, index=True)
    meta = db.Column('metadata', JSONType, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    last_login = db.Column(db.DateTime)

    def __init__(self, password=None, **kwargs):
        super().__init__(**kwargs)
        if password is not None:
            self.set_password(password)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self, detailed=False):
        data = {
            'id': str(self.id),
            'email': self.email,
            'name': self.name,
            'country': self.country,
            'role': self.role.value,
            'status': self.status.value,
        }
        if detailed:
            data.update({
                'phoneNumber': self.phone_number,
                'emergencyContact': self.emergency_contact,
                'createdAt': isoformat(self.created_at),
                'lastLogin': isoformat(self.last_login),
            })
        return data


class Location(db.Model):
    __tablename__ = 'locations'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('tourists.id', ondelete='CASCADE'), nullable=False, index=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    accuracy = db.Column(db.Float)
    altitude = db.Column(db.Float)
    speed = db.Column(db.Float)
    heading = db.Column(db.Float)
    battery_level = db.Column(db.Integer)
    is_background = db.Column(db.Boolean, default=False)
    alert_id = db.Column(UUID(as_uuid=True), db.ForeignKey('alerts.id'), index=True)
    meta = db.Column('metadata', JSONType, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    tourist = db.relationship('Tourist', backref=db.backref('locations', lazy='dynamic', passive_deletes=True))

    def to_dict(self):
        return {
            'id': str(self.id),
            'latitude': self.latitude,
            'longitude': self.longitude,
            'accuracy': self.accuracy,
            'speed': self.speed,
            'heading': self.heading,
            'batteryLevel': self.battery_level,
            'timestamp': isoformat(self.created_at),
        }


class Alert(db.Model):
    __tablename__ = 'alerts'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('tourists.id', ondelete='CASCADE'), nullable=False, index=True)
    type = db.Column(_enum(AlertType, 'alert_type'), nullable=False, index=True)
    severity = db.Column(_enum(AlertSeverity, 'alert_severity'), nullable=False, index=True)
    status = db.Column(_enum(AlertStatus, 'alert_status'), nullable=False, default=AlertStatus.ACTIVE, index=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    message = db.Column(db.Text)
    response_notes = db.Column(db.Text)
    assigned_to = db.Column(UUID(as_uuid=True), db.ForeignKey('tourists.id'))
    resolved_by = db.Column(UUID(as_uuid=True), db.ForeignKey('tourists.id'))
    blockchain_tx = db.Column(db.Text)
    blockchain_network = db.Column(db.Text)
    meta = db.Column('metadata', JSONType, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    resolved_at = db.Column(db.DateTime)

    tourist = db.relationship('Tourist', foreign_keys=[user_id])
    locations = db.relationship('Location', backref='alert', foreign_keys=[Location.alert_id],
                                order_by=Location.created_at)

    def to_dict(self, detailed=False):
        data = {
            'id': str(self.id),
            'userId': str(self.user_id),
            'userName': self.tourist.name if self.tourist else None,
            'userPhone': self.tourist.phone_number if self.tourist else None,
            'type': self.type.value,
            'severity': self.severity.value,
            'status': self.status.value,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'message': self.message,
            'responseNotes': self.response_notes,
            'assignedTo': str(self.assigned_to) if self.assigned_to else None,
            'blockchainTx': self.blockchain_tx,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
            'resolvedAt': isoformat(self.resolved_at),
        }
        if detailed:
            data.update({
                'user': self.tourist.to_dict(detailed=True) if self.tourist else None,
                'blockchainNetwork': self.blockchain_network,
                'metadata': self.meta or {},
                'locations': [location.to_dict() for location in self.locations],
            })
        return data


class Geofence(db.Model):
    __tablename__ = 'geofences'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(_enum(GeofenceType, 'geofence_type'), nullable=False, index=True)
    # WKT polygon in (lng lat) order, SRID 4326
    geometry = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by = db.Column(UUID(as_uuid=True), db.ForeignKey('tourists.id'))
    meta = db.Column('metadata', JSONType, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Place(db.Model):
    __tablename__ = 'places'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    ai_description = db.Column(db.Text)
    category = db.Column(db.String(100), index=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    rating = db.Column(db.Float)
    safety_score = db.Column(db.Float)
    meta = db.Column('metadata', JSONType, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'description': self.description,
            'aiDescription': self.ai_description,
            'category': self.category,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'rating': self.rating,
            'safetyScore': self.safety_score,
        }


class RefreshToken(db.Model):
    __tablename__ = 'refresh_tokens'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('tourists.id', ondelete='CASCADE'), nullable=False, index=True)
    token = db.Column(db.Text, nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class BlockchainAnchor(db.Model):
    __tablename__ = 'blockchain_anchors'
    __table_args__ = (
        db.CheckConstraint("reference_type IN ('alert', 'user', 'incident')", name='ck_anchor_reference_type'),
        db.Index('idx_blockchain_anchors_reference', 'reference_type', 'reference_id'),
    )
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_type = db.Column(db.String(20), nullable=False)
    reference_id = db.Column(UUID(as_uuid=True), nullable=False)
    hash = db.Column(db.Text, nullable=False, index=True)
    transaction_hash = db.Column(db.Text, nullable=False, index=True)
    network = db.Column(db.String(50), nullable=False)
    block_number = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class LocationShare(db.Model):
    __tablename__ = 'location_shares'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('tourists.id', ondelete='CASCADE'), nullable=False, index=True)
    shared_with = db.Column(db.Text, nullable=False)
    contact_phone = db.Column(db.Text)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class RagConversation(db.Model):
    __tablename__ = 'rag_conversations'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = db.Column(db.String(100), nullable=False, index=True)
    user_message = db.Column(db.Text, nullable=False)
    ai_response = db.Column(db.Text, nullable=False)
    context = db.Column(JSONType, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
