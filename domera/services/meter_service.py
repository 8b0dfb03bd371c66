"""Zähler einer Wohnung.

Neben gespeicherten Zählern gibt es virtuelle Wasserzähler, die aus den
Vorlagen des Gebäudes abgeleitet werden (z. B. ХВС/ГВС), solange für die
Vorlage kein gespeicherter Zähler existiert. Ein virtueller Zähler wird
beim ersten Speichern (Zählernummer, Eichdatum) als echter Datensatz angelegt.
"""

import re
from datetime import datetime, timedelta

from flask import current_app

from domera.constants import (
    COLD_WATER_CODE,
    HOT_WATER_CODE,
    METER_DISPLAY_NAMES,
    METER_META_EDIT_WINDOW_DAYS,
    METER_TYPES,
    ROLE_MANAGEMENT,
)
from domera.errors import NotFoundError, PermissionDenied, ValidationError
from domera.extensions import db
from domera.models import Apartment, Building, Meter
from domera.services.building_service import get_water_templates
from domera.utils.dates import parse_date

HOT_RE = re.compile(r'гвс|gvs|hot|гор|warm', re.IGNORECASE)
COLD_RE = re.compile(r'хвс|cwm|cold|хол|kalt', re.IGNORECASE)
_KEY_STRIP_RE = re.compile(r'[^a-zа-я0-9_-]', re.IGNORECASE)

_UPDATABLE_FIELDS = ('serial_number', 'check_due_date', 'name', 'type', 'apartment_id')


def normalize_meter_key(value):
    value = re.sub(r'\s+', '-', (value or '').strip().lower())
    return _KEY_STRIP_RE.sub('', value)


def _field(meter, key):
    if isinstance(meter, dict):
        return meter.get(key)
    return getattr(meter, key, None)


def meter_name_code(name):
    """'Горячая вода' -> 'hwm', 'ХВС' -> 'cwm', sonst unverändert."""
    if not name:
        return None
    if HOT_RE.search(name):
        return HOT_WATER_CODE
    if COLD_RE.search(name):
        return COLD_WATER_CODE
    return name


def get_meter_display_name(meter):
    name = str(_field(meter, 'name') or '').strip()
    if not name:
        serial = str(_field(meter, 'serial_number') or '').strip()
        return serial or _field(meter, 'id')
    return METER_DISPLAY_NAMES.get(name.lower(), name)


def is_hot_meter(meter):
    name = str(_field(meter, 'name') or '')
    return name.lower() == HOT_WATER_CODE or bool(HOT_RE.search(get_meter_display_name(meter) or ''))


def virtual_water_meter(apartment_id, template_name):
    key = normalize_meter_key(template_name) or 'water'
    return {
        'id': f'house-water-{apartment_id}-{key}',
        'apartment_id': apartment_id,
        'type': 'water',
        'serial_number': f'HOUSE-WATER-{key.upper()}',
        'name': HOT_WATER_CODE if HOT_RE.search(template_name) else COLD_WATER_CODE,
        'check_due_date': None,
        'virtual': True,
    }


def _persisted_meter_dict(meter):
    data = meter.to_dict()
    data['name'] = meter_name_code(meter.name)
    data['virtual'] = False
    return data


def get_meter(meter_id):
    if not meter_id:
        return None
    return db.session.get(Meter, meter_id)


def get_meters_by_apartment(apartment_id):
    """Gespeicherte Zähler plus fehlende virtuelle Wasserzähler (als Dicts)."""
    apartment = db.session.get(Apartment, apartment_id) if apartment_id else None
    if not apartment:
        return []
    building = db.session.get(Building, apartment.building_id)
    templates = get_water_templates(building)

    persisted = [
        _persisted_meter_dict(m)
        for m in Meter.query.filter_by(apartment_id=apartment_id).order_by(Meter.created_at).all()
    ]
    covered = {
        normalize_meter_key(get_meter_display_name(m))
        for m in persisted
        if m['type'] == 'water'
    }
    covered.discard('')
    persisted_ids = {m['id'] for m in persisted}

    virtual = []
    for name in templates:
        candidate = virtual_water_meter(apartment_id, name)
        # Gespeicherte virtuelle Zähler behalten ihre ID, der Name wird aber zum Code
        if candidate['id'] in persisted_ids or normalize_meter_key(name) in covered:
            continue
        virtual.append(candidate)
    return persisted + virtual


def get_water_meters_by_apartment(apartment_id):
    """Wasserzähler, Kaltwasser zuerst."""
    meters = [m for m in get_meters_by_apartment(apartment_id) if m['type'] == 'water']
    return sorted(meters, key=is_hot_meter)


def create_meter(apartment_id, meter_type='water', serial_number=None, name=None, check_due_date=None):
    if meter_type not in METER_TYPES:
        raise ValidationError(f'Unbekannter Zählertyp: {meter_type}')
    if not db.session.get(Apartment, apartment_id):
        raise NotFoundError('Wohnung nicht gefunden')

    meter = Meter(
        apartment_id=apartment_id,
        type=meter_type,
        serial_number=(serial_number or '').strip() or None,
        name=name,
        check_due_date=parse_date(check_due_date),
    )
    db.session.add(meter)
    db.session.commit()
    return meter


def delete_meter(meter_id):
    meter = get_meter(meter_id)
    if not meter:
        raise NotFoundError('Zähler nicht gefunden')
    db.session.delete(meter)
    db.session.commit()


def _edit_window_open(due, now):
    return now.date() >= due - timedelta(days=METER_META_EDIT_WINDOW_DAYS)


def can_edit_meter_meta(meter, now=None):
    """Zählernummer/Eichdatum dürfen einmalig ergänzt werden, sonst erst 30 Tage vor Fälligkeit."""
    if meter is None:
        return False
    if not _field(meter, 'serial_number') or not _field(meter, 'check_due_date'):
        return True
    due = parse_date(_field(meter, 'check_due_date'))
    if due is None:
        return False
    return _edit_window_open(due, now or datetime.utcnow())


def _clean_update(data):
    cleaned = {}
    for key in _UPDATABLE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key == 'serial_number':
            value = (value or '').strip() or None
        elif key == 'check_due_date':
            if value in (None, ''):
                value = None
            else:
                parsed = parse_date(value)
                if parsed is None:
                    raise ValidationError('Ungültiges Eichdatum')
                value = parsed
        elif key == 'type' and value not in METER_TYPES:
            raise ValidationError(f'Unbekannter Zählertyp: {value}')
        cleaned[key] = value
    return cleaned


def update_meter(meter_id, data, force=False, now=None):
    """Aktualisiert einen Zähler oder legt ihn (virtuell -> gespeichert) an.

    Eine abweichende Zählernummer wird ohne ``force`` nur akzeptiert, wenn
    ein Eichdatum hinterlegt ist und höchstens 30 Tage bis dahin verbleiben.
    """
    if not meter_id:
        raise ValidationError('Zähler-ID ist erforderlich')
    data = _clean_update(data)
    existing = get_meter(meter_id)

    new_serial = data.get('serial_number')
    if not force and existing and new_serial and existing.serial_number and new_serial != existing.serial_number:
        if not existing.check_due_date:
            raise PermissionDenied('Änderung der Zählernummer ist nicht erlaubt')
        if not _edit_window_open(existing.check_due_date, now or datetime.utcnow()):
            raise PermissionDenied('Änderung der Zählernummer ist erst einen Monat vor dem Eichtermin erlaubt')

    if existing:
        for key, value in data.items():
            setattr(existing, key, value)
        meter = existing
    else:
        meter = Meter(id=meter_id, type=data.pop('type', 'water'), **data)
        db.session.add(meter)
        current_app.logger.info(f"Zähler {meter_id} angelegt")

    db.session.commit()
    return meter


def set_meter_check_date(meter_id, check_date, force=False, now=None, defaults=None):
    """Speichert das Eichdatum normalisiert als ``date`` (yyyy-mm-dd)."""
    if not meter_id or not check_date:
        raise ValidationError('Zähler-ID und Datum sind erforderlich')
    parsed = parse_date(check_date)
    if parsed is None:
        raise ValidationError('Ungültiges Eichdatum')
    payload = dict(defaults or {})
    payload['check_due_date'] = parsed.isoformat()
    return update_meter(meter_id, payload, force=force, now=now)


def _meter_for_policy(meter_id, apartment_id=None):
    meter = get_meter(meter_id)
    if meter:
        return meter.to_dict()
    if apartment_id:
        for candidate in get_meters_by_apartment(apartment_id):
            if candidate['id'] == meter_id:
                return candidate
    return None


def authorize_meta_edit(meter_id, apartment_id, user, force=False, now=None):
    """Prüft die Sperrfrist; liefert ``(aktueller Zähler, force wirksam)``.

    Ist die Bearbeitung gesperrt, darf nur die Verwaltung mit ``force`` speichern.
    """
    current = _meter_for_policy(meter_id, apartment_id)
    forced = bool(force) and user is not None and user.role == ROLE_MANAGEMENT
    if current is not None and not can_edit_meter_meta(current, now) and not forced:
        raise PermissionDenied('Zählerdaten können erst einen Monat vor dem Eichtermin geändert werden')
    return current, forced


def _creation_defaults(meter_id, current):
    # Virtuellen Zähler mit seinen Stammdaten anlegen
    if current is None or get_meter(meter_id):
        return {}
    return {
        'apartment_id': current['apartment_id'],
        'type': current['type'],
        'name': current['name'],
    }


def edit_meter_meta(meter_id, data, user, force=False, now=None):
    """Zählernummer/Eichdatum/Name aus der Oberfläche speichern."""
    current, forced = authorize_meta_edit(meter_id, data.get('apartment_id'), user, force, now)
    payload = _creation_defaults(meter_id, current)
    payload.update(data)
    if 'name' in payload:
        payload['name'] = meter_name_code(payload['name'])
    return update_meter(meter_id, payload, force=forced, now=now)


def edit_meter_check_date(meter_id, apartment_id, check_date, user, force=False, now=None):
    current, forced = authorize_meta_edit(meter_id, apartment_id, user, force, now)
    defaults = _creation_defaults(meter_id, current)
    if apartment_id:
        defaults.setdefault('apartment_id', apartment_id)
    return set_meter_check_date(meter_id, check_date, force=forced, now=now, defaults=defaults)
