"""Formularvalidierung.

Die Funktionen liefern Booleans bzw. ``(ok, fehler)``-Tupel und werfen
nicht selbst; die Services entscheiden, welcher Fehler geworfen wird.
"""

import math
import re

from domera.constants import (
    ADDRESS_MAX_LENGTH,
    ADDRESS_MIN_LENGTH,
    BUILDING_NAME_MAX_LENGTH,
    BUILDING_NAME_MIN_LENGTH,
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
)

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
APARTMENT_NUMBER_RE = re.compile(r'^[0-9а-яa-z\-/]+$', re.IGNORECASE)


def normalize_email(email):
    return (email or '').strip().lower()


def validate_email(email):
    if not isinstance(email, str):
        return False
    return bool(EMAIL_RE.match(email.strip()))


def validate_password(password):
    errors = []
    if not password:
        errors.append('Passwort ist erforderlich')
    elif len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f'Passwort muss mindestens {PASSWORD_MIN_LENGTH} Zeichen lang sein')
    elif len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f'Passwort darf höchstens {PASSWORD_MAX_LENGTH} Zeichen lang sein')
    return len(errors) == 0, errors


def validate_building_name(name):
    name = (name or '').strip()
    if not name:
        return False, 'Gebäudename ist erforderlich'
    if len(name) < BUILDING_NAME_MIN_LENGTH:
        return False, f'Gebäudename muss mindestens {BUILDING_NAME_MIN_LENGTH} Zeichen lang sein'
    if len(name) > BUILDING_NAME_MAX_LENGTH:
        return False, f'Gebäudename darf höchstens {BUILDING_NAME_MAX_LENGTH} Zeichen lang sein'
    return True, None


def validate_address(address):
    address = (address or '').strip()
    if not address:
        return False, 'Adresse ist erforderlich'
    if len(address) < ADDRESS_MIN_LENGTH:
        return False, f'Adresse muss mindestens {ADDRESS_MIN_LENGTH} Zeichen lang sein'
    if len(address) > ADDRESS_MAX_LENGTH:
        return False, f'Adresse darf höchstens {ADDRESS_MAX_LENGTH} Zeichen lang sein'
    return True, None


def validate_apartment_number(number):
    number = (number or '').strip() if isinstance(number, str) else ''
    if not number:
        return False, 'Wohnungsnummer ist erforderlich'
    if not APARTMENT_NUMBER_RE.match(number):
        return False, 'Wohnungsnummer darf nur Ziffern, Buchstaben, "-" und "/" enthalten'
    return True, None


def validate_meter_reading(value):
    if isinstance(value, bool):
        return False, 'Zählerstand muss eine Zahl sein'
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False, 'Zählerstand muss eine Zahl sein'
    if not math.isfinite(number):
        return False, 'Zählerstand muss eine endliche Zahl sein'
    if number < 0:
        return False, 'Zählerstand darf nicht negativ sein'
    return True, None


def validate_consumption(current, previous):
    """Prüft einen neuen Zählerstand gegen den Vorwert und liefert den Verbrauch."""
    ok, error = validate_meter_reading(current)
    if not ok:
        return False, error, None
    current = float(current)
    previous = float(previous or 0)
    if current < previous:
        return False, f'Zählerstand ({current}) darf nicht kleiner als der Vorwert ({previous}) sein', None
    return True, None, round(current - previous, 3)


def validate_building_form(name, address):
    errors = {}
    ok, error = validate_building_name(name)
    if not ok:
        errors['name'] = error
    ok, error = validate_address(address)
    if not ok:
        errors['address'] = error
    return len(errors) == 0, errors


def validate_login_form(email, password):
    errors = {}
    if not validate_email(email or ''):
        errors['email'] = 'Ungültige E-Mail-Adresse'
    if not password:
        errors['password'] = 'Passwort ist erforderlich'
    return len(errors) == 0, errors
