"""Zählerstände einer Wohnung.

Die Stände liegen im Wohnungsdatensatz (``Apartment.water_readings``),
entweder als alte flache Liste oder gruppiert pro Zähler::

    [{'meter_id': ..., 'meter_name': ..., 'meter_serial': ...,
      'check_due_date': ..., 'history': [reading, ...]}, ...]

Beim ersten neuen Stand wird eine flache Liste in Gruppen überführt.
Pro Zähler ist nur ein Stand je Kalendermonat erlaubt.
"""

import copy
import csv
import io
import uuid
from datetime import date, datetime

import pandas as pd
from flask import current_app

from domera.constants import PERMISSION_SUBMIT_METER, ROLE_MANAGEMENT, ROLE_RESIDENT
from domera.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from domera.extensions import db
from domera.models import Apartment, Building, Meter
from domera.services.apartment_service import get_apartments_by_company, require_apartment
from domera.services.building_service import get_submission_open_day
from domera.services.meter_service import (
    get_meter,
    get_meter_display_name,
    get_water_meters_by_apartment,
    update_meter,
)
from domera.utils.dates import parse_datetime
from domera.utils.validation import validate_consumption, validate_meter_reading

# Eingabe im Formular: höchstens 5 Vorkomma- und 3 Nachkommastellen
MAX_READING_VALUE = 100000
READING_PRECISION = 3

EXPORT_COLUMNS = [
    ('apartment', 'Wohnung'),
    ('building', 'Gebäude'),
    ('meter', 'Zähler'),
    ('period', 'Zeitraum'),
    ('submitted_at', 'Übermittelt am'),
    ('previous_value', 'Vorwert'),
    ('current_value', 'Aktueller Wert'),
    ('consumption', 'Verbrauch (m³)'),
    ('is_missing', 'Kein Zähler'),
]


def _is_group(item):
    return isinstance(item, dict) and isinstance(item.get('history'), list)


def _is_flat_reading(item):
    return isinstance(item, dict) and isinstance(item.get('meter_id'), str) and 'history' not in item


def has_grouped_readings(raw):
    return any(_is_group(item) for item in raw or [])


def _meter_meta(meter_id):
    meter = get_meter(meter_id)
    if not meter:
        return {}
    return {
        'meter_name': meter.name or '',
        'meter_serial': meter.serial_number or '',
        'check_due_date': meter.check_due_date.isoformat() if meter.check_due_date else None,
    }


def _same_period(reading, month, year):
    try:
        return int(reading.get('month')) == int(month) and int(reading.get('year')) == int(year)
    except (TypeError, ValueError):
        return False


def _ensure_not_duplicate(history, month, year):
    if any(_same_period(h, month, year) for h in history):
        raise ConflictError('Für diesen Zähler wurde im angegebenen Monat bereits ein Stand übermittelt')


def flatten_readings(raw):
    """Gruppen -> flache Liste; Nummer und Eichdatum der Gruppe werden übernommen."""
    flattened = []
    for item in raw or []:
        if _is_group(item):
            serial = item.get('meter_serial') or ''
            check_due = item.get('check_due_date')
            for entry in item['history']:
                enriched = dict(entry)
                if not enriched.get('meter_serial') and serial:
                    enriched['meter_serial'] = serial
                if enriched.get('check_due_date') is None:
                    enriched['check_due_date'] = check_due
                flattened.append(enriched)
        elif _is_flat_reading(item):
            flattened.append(dict(item))
    return flattened


def migrate_to_groups(raw):
    """Alte flache Liste in Gruppen pro Zähler überführen (Reihenfolge bleibt)."""
    groups = {}
    for item in raw or []:
        if _is_flat_reading(item):
            groups.setdefault(item['meter_id'], []).append(item)
    return [
        dict(meter_id=meter_id, history=history, **_group_meta_defaults(_meter_meta(meter_id)))
        for meter_id, history in groups.items()
    ]


def _group_meta_defaults(meta, group=None):
    group = group or {}
    return {
        'meter_name': meta.get('meter_name') or group.get('meter_name') or '',
        'meter_serial': meta.get('meter_serial') or group.get('meter_serial') or '',
        'check_due_date': meta.get('check_due_date') or group.get('check_due_date'),
    }


def submit_meter_reading(data, now=None, commit=True):
    """Speichert einen Zählerstand im Wohnungsdatensatz und gibt ihn zurück."""
    apartment_id = data.get('apartment_id')
    meter_id = data.get('meter_id')
    if not apartment_id or not isinstance(apartment_id, str):
        raise ValidationError('Wohnungs-ID muss angegeben werden')
    if not meter_id:
        raise ValidationError('Zähler-ID muss angegeben werden')
    for key in ('month', 'year'):
        if data.get(key) is None:
            raise ValidationError(f'{key} ist erforderlich')
    apartment = require_apartment(apartment_id)

    submitted_at = now or datetime.utcnow()
    meta = _meter_meta(meter_id)
    reading = dict(data)
    reading.update({
        'id': uuid.uuid4().hex,
        'month': int(data['month']),
        'year': int(data['year']),
        'submitted_at': submitted_at.isoformat(),
        'meter_serial': meta.get('meter_serial', ''),
        'date': submitted_at.isoformat(),
    })

    raw = copy.deepcopy(apartment.water_readings or [])
    if has_grouped_readings(raw):
        groups = raw
    else:
        groups = migrate_to_groups(raw)
        if raw:
            current_app.logger.info(f"Zählerstände der Wohnung {apartment_id} in Gruppen überführt")

    group = next((g for g in groups if _is_group(g) and g.get('meter_id') == meter_id), None)
    if group is None:
        groups.append(dict(meter_id=meter_id, history=[reading], **_group_meta_defaults(meta)))
    else:
        _ensure_not_duplicate(group['history'], reading['month'], reading['year'])
        group['history'] = group['history'] + [reading]
        group.update(_group_meta_defaults(meta, group))

    apartment.water_readings = groups
    if commit:
        db.session.commit()
    return reading


def get_readings_by_apartment(apartment_id):
    apartment = db.session.get(Apartment, apartment_id) if apartment_id else None
    if not apartment:
        return []
    return flatten_readings(apartment.water_readings)


def get_readings_by_apartment_and_period(apartment_id, month, year):
    return [r for r in get_readings_by_apartment(apartment_id) if _same_period(r, month, year)]


def get_readings_by_company(company_id):
    readings = []
    for apartment in get_apartments_by_company(company_id):
        readings.extend(flatten_readings(apartment.water_readings))
    return readings


def _submitted_at(reading):
    return parse_datetime(reading.get('submitted_at')) or datetime.min


def get_last_reading(apartment_id, meter_id):
    candidates = [r for r in get_readings_by_apartment(apartment_id) if r.get('meter_id') == meter_id]
    if not candidates:
        return None
    return max(candidates, key=_submitted_at)


def update_meter_reading(apartment_id, reading_id, data):
    apartment = require_apartment(apartment_id)
    changes = {k: v for k, v in data.items() if k != 'id'}
    raw = copy.deepcopy(apartment.water_readings or [])
    found = False

    for item in raw:
        entries = item['history'] if _is_group(item) else [item]
        for entry in entries:
            if isinstance(entry, dict) and entry.get('id') == reading_id:
                entry.update(changes)
                found = True

    if not found:
        raise NotFoundError('Zählerstand nicht gefunden')
    apartment.water_readings = raw
    db.session.commit()


def delete_meter_reading(apartment_id, reading_id, now=None):
    """Löscht einen Stand; nur Stände des laufenden Monats sind löschbar."""
    apartment = require_apartment(apartment_id)
    now = now or datetime.utcnow()
    raw = copy.deepcopy(apartment.water_readings or [])

    target = None
    for item in raw:
        if _is_group(item):
            for entry in item['history']:
                if entry.get('id') == reading_id:
                    target = entry
        elif isinstance(item, dict) and item.get('id') == reading_id:
            target = item

    if target is None:
        raise NotFoundError('Zählerstand nicht gefunden')
    if not _same_period(target, now.month, now.year):
        raise PermissionDenied('Zählerstände vergangener Monate können nicht gelöscht werden')

    remaining = []
    for item in raw:
        if _is_group(item):
            item['history'] = [e for e in item['history'] if e.get('id') != reading_id]
            remaining.append(item)
        elif not (isinstance(item, dict) and item.get('id') == reading_id):
            remaining.append(item)
    apartment.water_readings = remaining
    db.session.commit()


def can_user_submit(user, apartment):
    if user is None or apartment is None:
        return False
    if user.role == ROLE_RESIDENT and user.apartment_id == apartment.id:
        return True
    if user.role == ROLE_MANAGEMENT and user.company_id and user.company_id in apartment.all_company_ids():
        return True
    return any(
        t.get('user_id') == user.id and PERMISSION_SUBMIT_METER in (t.get('permissions') or [])
        for t in apartment.tenants or []
    )


def is_submission_allowed(open_day, now=None):
    now = now or datetime.utcnow()
    return now.day >= open_day


def days_until_submission_open(open_day, now=None):
    """0 wenn das Fenster offen ist, sonst Tage bis zum Öffnungstag dieses Monats."""
    today = (now or datetime.utcnow()).date()
    if today.day >= open_day:
        return 0
    return open_day - today.day


def _parse_input_value(meter, raw_value):
    label = get_meter_display_name(meter)
    ok, error = validate_meter_reading(raw_value)
    if not ok:
        raise ValidationError(f'{label}: {error}')
    value = round(float(raw_value), READING_PRECISION)
    if value >= MAX_READING_VALUE:
        raise ValidationError(f'{label}: Zählerstand ist zu groß')
    return value


def submit_water_readings(user, apartment_id, values, serials=None, now=None):
    """Übermittelt die Wasserzählerstände einer Wohnung für den laufenden Monat.

    ``values`` bildet Zähler-IDs auf Stände ab, ``serials`` optional auf
    einmalig nachzutragende Zählernummern.
    """
    now = now or datetime.utcnow()
    serials = serials or {}
    apartment = require_apartment(apartment_id)

    if not can_user_submit(user, apartment):
        raise PermissionDenied('Keine Berechtigung für die Übermittlung von Zählerständen')

    open_day = get_submission_open_day(db.session.get(Building, apartment.building_id))
    if not is_submission_allowed(open_day, now):
        raise PermissionDenied(f'Zählerstände können ab dem {open_day}. des Monats übermittelt werden')

    water_meters = get_water_meters_by_apartment(apartment_id)
    if not water_meters:
        raise ValidationError('Für diese Wohnung sind keine Wasserzähler eingerichtet')

    existing = get_readings_by_apartment(apartment_id)
    already = [
        m for m in water_meters
        if any(r.get('meter_id') == m['id'] and _same_period(r, now.month, now.year) for r in existing)
    ]
    if already:
        names = ', '.join(get_meter_display_name(m) for m in already)
        raise ConflictError(f'Zählerstände wurden in diesem Monat bereits übermittelt: {names}')

    prepared = []
    for meter in water_meters:
        if meter['id'] not in values:
            raise ValidationError(f'{get_meter_display_name(meter)}: Zählerstand fehlt')
        current_value = _parse_input_value(meter, values[meter['id']])
        last = get_last_reading(apartment_id, meter['id'])
        previous_value = float(last.get('current_value') or 0) if last else 0.0

        ok, error, consumption = validate_consumption(current_value, previous_value)
        if not ok:
            raise ValidationError(f'{get_meter_display_name(meter)}: {error}')

        prepared.append({
            'company_id': user.company_id or (apartment.all_company_ids() or [None])[0],
            'building_id': apartment.building_id,
            'apartment_id': apartment.id,
            'meter_id': meter['id'],
            'previous_value': previous_value,
            'current_value': current_value,
            'consumption': 0 if last is None else consumption,
            'month': now.month,
            'year': now.year,
        })

    # Einmalig eingetragene Zählernummern vor dem Speichern übernehmen
    for meter in water_meters:
        pending = (serials.get(meter['id']) or '').strip()
        if pending and (meter.get('virtual') or not meter.get('serial_number')):
            try:
                update_meter(meter['id'], {
                    'serial_number': pending,
                    'apartment_id': apartment.id,
                    'type': 'water',
                    'name': meter.get('name'),
                }, now=now)
            except ValueError as exc:
                current_app.logger.warning(f"Zählernummer für {meter['id']} nicht gespeichert: {exc}")

    # Alle Stände eines Monats gemeinsam speichern oder keinen
    try:
        created = [submit_meter_reading(reading, now=now, commit=False) for reading in prepared]
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"{len(created)} Zählerstände für Wohnung {apartment_id} übermittelt")
    return created


def _format_submitted_at(value):
    parsed = parse_datetime(value)
    return parsed.strftime('%d.%m.%Y %H:%M') if parsed else ''


def build_export_rows(apartments):
    """Exportzeilen (neueste zuerst); der erste Stand je Zähler zählt mit Verbrauch 0."""
    building_names = {}
    meter_names = {}
    readings = []
    for apartment in apartments:
        if apartment.building_id not in building_names:
            building = db.session.get(Building, apartment.building_id)
            building_names[apartment.building_id] = building.name if building else 'Nicht angegeben'
        for meter in Meter.query.filter_by(apartment_id=apartment.id).all():
            meter_names[meter.id] = get_meter_display_name(meter)
        for reading in flatten_readings(apartment.water_readings):
            readings.append((apartment, reading))

    first_by_meter = {}
    for _, reading in sorted(readings, key=lambda pair: _submitted_at(pair[1])):
        first_by_meter.setdefault(reading.get('meter_id'), reading.get('id'))

    rows = []
    for apartment, reading in sorted(readings, key=lambda pair: _submitted_at(pair[1]), reverse=True):
        meter_id = reading.get('meter_id')
        is_first = first_by_meter.get(meter_id) == reading.get('id')
        rows.append({
            'apartment': apartment.number,
            'building': building_names.get(apartment.building_id),
            'meter': meter_names.get(meter_id) or reading.get('meter_name') or meter_id,
            'period': f"{int(reading.get('month', 0)):02d}.{reading.get('year')}",
            'submitted_at': _format_submitted_at(reading.get('submitted_at')),
            'previous_value': reading.get('previous_value'),
            'current_value': reading.get('current_value'),
            'consumption': 0 if is_first else reading.get('consumption'),
            'is_missing': bool(reading.get('is_missing')),
        })
    return rows


def _export_value(row, key):
    if key == 'is_missing':
        return 'Ja' if row[key] else 'Nein'
    return row[key]


def export_csv(rows):
    output = io.StringIO()
    writer = csv.writer(output, delimiter=';', quoting=csv.QUOTE_ALL)
    writer.writerow([label for _, label in EXPORT_COLUMNS])
    for row in rows:
        writer.writerow([_export_value(row, key) for key, _ in EXPORT_COLUMNS])
    return output.getvalue()


def export_xlsx(rows):
    data = [{label: _export_value(row, key) for key, label in EXPORT_COLUMNS} for row in rows]
    df = pd.DataFrame(data, columns=[label for _, label in EXPORT_COLUMNS])

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name='Zählerstände', index=False)
        worksheet = writer.sheets['Zählerstände']

        # Spaltenbreiten anpassen
        for column in worksheet.columns:
            max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
            worksheet.column_dimensions[column[0].column_letter].width = max_length + 2
    return output.getvalue()


def export_filename(extension, today=None):
    today = today or date.today()
    return f"zaehlerstaende_{today.isoformat()}.{extension}"


def populate_reading_meta():
    """Ergänzt fehlende Zählerdaten (Name, Nummer, Eichdatum) in den Gruppen.

    Liefert die Anzahl geänderter Wohnungen.
    """
    updated = 0
    for apartment in Apartment.query.all():
        raw = apartment.water_readings or []
        if not raw:
            continue
        groups = copy.deepcopy(raw) if has_grouped_readings(raw) else migrate_to_groups(raw)
        for group in groups:
            if _is_group(group):
                group.update(_group_meta_defaults(_meter_meta(group.get('meter_id')), group))
        if groups != raw:
            apartment.water_readings = groups
            updated += 1
    db.session.commit()
    return updated
