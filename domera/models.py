from domera.extensions import db
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
import uuid

from domera.constants import (
    DEFAULT_SUBMISSION_OPEN_DAY,
    DEFAULT_WATER_METER_TEMPLATES,
    ROLE_RESIDENT,
)


def _new_id():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class Company(db.Model):
    __tablename__ = 'companies'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    owner_uid = db.Column(db.String(36), nullable=False)
    address = db.Column(db.String(500))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(255))
    # [{'id': ..., 'name': ...}] - Kurzliste der Gebäude
    buildings = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'owner_uid': self.owner_uid,
            'address': self.address,
            'phone': self.phone,
            'email': self.email,
            'buildings': list(self.buildings or []),
            'created_at': _iso(self.created_at),
        }


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(30), default=ROLE_RESIDENT)  # ManagementCompany, Resident, Accountant
    company_id = db.Column(db.String(36), db.ForeignKey('companies.id'))
    apartment_id = db.Column(db.String(36))
    display_name = db.Column(db.String(120))
    notifications = db.Column(db.JSON, default=dict)
    privacy_consent = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'company_id': self.company_id,
            'apartment_id': self.apartment_id,
            'display_name': self.display_name,
            'notifications': dict(self.notifications or {}),
            'privacy_consent': bool(self.privacy_consent),
            'is_active': self.is_active,
            'last_login': _iso(self.last_login),
            'created_at': _iso(self.created_at),
        }


class Building(db.Model):
    __tablename__ = 'buildings'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    company_id = db.Column(db.String(36), db.ForeignKey('companies.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(500))
    # {'company_name', 'manager_uid', 'manager_email'}
    managed_by = db.Column(db.JSON, default=dict)
    apartment_ids = db.Column(db.JSON, default=list)
    water_meter_templates = db.Column(db.JSON, default=lambda: list(DEFAULT_WATER_METER_TEMPLATES))
    water_submission_open_day = db.Column(db.Integer, default=DEFAULT_SUBMISSION_OPEN_DAY)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    apartments = db.relationship('Apartment', backref='building', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'name': self.name,
            'address': self.address,
            'managed_by': dict(self.managed_by or {}),
            'apartment_ids': list(self.apartment_ids or []),
            'water_meter_templates': list(self.water_meter_templates or []),
            'water_submission_open_day': self.water_submission_open_day,
            'created_at': _iso(self.created_at),
        }


class Apartment(db.Model):
    __tablename__ = 'apartments'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    building_id = db.Column(db.String(36), db.ForeignKey('buildings.id'), nullable=False)
    number = db.Column(db.String(50), nullable=False)
    # Alte Datensätze kennen nur eine einzelne company_id
    company_id = db.Column(db.String(36))
    company_ids = db.Column(db.JSON, default=list)
    resident_id = db.Column(db.String(36))
    # [{'user_id', 'email', 'name', 'permissions', 'invited_at', 'accepted_at'}]
    tenants = db.Column(db.JSON, default=list)
    # Entweder flache Liste (alt) oder Gruppen pro Zähler mit 'history'
    water_readings = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def all_company_ids(self):
        ids = list(self.company_ids or [])
        if self.company_id and self.company_id not in ids:
            ids.append(self.company_id)
        return ids

    def to_dict(self, include_readings=False):
        data = {
            'id': self.id,
            'building_id': self.building_id,
            'number': self.number,
            'company_ids': self.all_company_ids(),
            'resident_id': self.resident_id,
            'tenants': list(self.tenants or []),
            'created_at': _iso(self.created_at),
        }
        if include_readings:
            data['water_readings'] = list(self.water_readings or [])
        return data


class Meter(db.Model):
    __tablename__ = 'meters'

    # Virtuelle Zähler haben sprechende IDs (house-water-<wohnung>-<key>)
    id = db.Column(db.String(255), primary_key=True, default=_new_id)
    apartment_id = db.Column(db.String(36), index=True)
    type = db.Column(db.String(20), default='water')  # water, electricity, heat
    serial_number = db.Column(db.String(120))
    name = db.Column(db.String(120))
    check_due_date = db.Column(db.Date)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'apartment_id': self.apartment_id,
            'type': self.type,
            'serial_number': self.serial_number or '',
            'name': self.name,
            'check_due_date': _iso(self.check_due_date),
        }


class Invitation(db.Model):
    __tablename__ = 'invitations'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    company_id = db.Column(db.String(36), nullable=False)
    apartment_id = db.Column(db.String(36), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(db.String(20), default='pending')  # pending, accepted, revoked
    token = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    invited_by_uid = db.Column(db.String(36))
    accepted_at = db.Column(db.DateTime)
    revoked_at = db.Column(db.DateTime)
    gdpr = db.Column(db.JSON, default=dict)
    permissions = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'apartment_id': self.apartment_id,
            'email': self.email,
            'status': self.status,
            'token': self.token,
            'created_at': _iso(self.created_at),
            'expires_at': _iso(self.expires_at),
            'invited_by_uid': self.invited_by_uid,
            'accepted_at': _iso(self.accepted_at),
            'revoked_at': _iso(self.revoked_at),
            'gdpr': dict(self.gdpr or {}),
            'permissions': self.permissions,
        }


class Invoice(db.Model):
    __tablename__ = 'invoices'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    company_id = db.Column(db.String(36), nullable=False, index=True)
    building_id = db.Column(db.String(36), index=True)
    apartment_id = db.Column(db.String(36), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(20), default='pending')  # pending, paid, overdue
    pdf_path = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'building_id': self.building_id,
            'apartment_id': self.apartment_id,
            'month': self.month,
            'year': self.year,
            'amount': self.amount,
            'status': self.status,
            'pdf_path': self.pdf_path,
            'created_at': _iso(self.created_at),
        }


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    company_id = db.Column(db.String(36), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), default='planned')  # planned, in-progress, completed
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }


class NewsItem(db.Model):
    __tablename__ = 'news'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    company_id = db.Column(db.String(36), nullable=False, index=True)
    building_id = db.Column(db.String(36))
    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'building_id': self.building_id,
            'title': self.title,
            'body': self.body,
            'created_at': _iso(self.created_at),
        }


class RevisionLog(db.Model):
    __tablename__ = 'revision_logs'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    table_name = db.Column(db.String(80), nullable=False)
    record_id = db.Column(db.String(255))
    action = db.Column(db.String(20), nullable=False)  # insert, update, delete
    user_id = db.Column(db.String(36))
    changes = db.Column(db.Text)  # JSON Snapshot / Delta
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def as_dict(self):
        return {
            'id': self.id,
            'table_name': self.table_name,
            'record_id': self.record_id,
            'action': self.action,
            'user_id': self.user_id,
            'changes': self.changes,
            'created_at': _iso(self.created_at),
            'ip_address': self.ip_address,
        }
