import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from domera.constants import INVOICE_STATUSES
from domera.errors import NotFoundError, ValidationError
from domera.extensions import db
from domera.models import Invoice
from domera.services.apartment_service import require_apartment

_UPDATABLE_FIELDS = ('month', 'year', 'amount', 'status', 'building_id')


def _validate(month, year, amount, status):
    try:
        month, year, amount = int(month), int(year), float(amount)
    except (TypeError, ValueError):
        raise ValidationError('Monat, Jahr und Betrag müssen Zahlen sein')
    if not 1 <= month <= 12:
        raise ValidationError('Monat muss zwischen 1 und 12 liegen')
    if amount < 0:
        raise ValidationError('Betrag darf nicht negativ sein')
    if status not in INVOICE_STATUSES:
        raise ValidationError(f'Unbekannter Status: {status}')
    return month, year, amount


def create_invoice(company_id, apartment_id, month, year, amount, status='pending', building_id=None):
    apartment = require_apartment(apartment_id)
    month, year, amount = _validate(month, year, amount, status)
    invoice = Invoice(
        company_id=company_id,
        apartment_id=apartment.id,
        building_id=building_id or apartment.building_id,
        month=month,
        year=year,
        amount=amount,
        status=status,
    )
    db.session.add(invoice)
    db.session.commit()
    return invoice


def get_invoice(invoice_id):
    if not invoice_id:
        return None
    return db.session.get(Invoice, invoice_id)


def require_invoice(invoice_id):
    invoice = get_invoice(invoice_id)
    if not invoice:
        raise NotFoundError('Rechnung nicht gefunden')
    return invoice


def _ordered(query):
    return query.order_by(Invoice.year.desc(), Invoice.month.desc()).all()


def get_invoices_by_apartment(apartment_id):
    return _ordered(Invoice.query.filter_by(apartment_id=apartment_id))


def get_invoices_by_company(company_id):
    return _ordered(Invoice.query.filter_by(company_id=company_id))


def get_invoices_by_building(building_id):
    return _ordered(Invoice.query.filter_by(building_id=building_id))


def update_invoice_status(invoice_id, status):
    if status not in INVOICE_STATUSES:
        raise ValidationError(f'Unbekannter Status: {status}')
    invoice = require_invoice(invoice_id)
    invoice.status = status
    db.session.commit()
    return invoice


def update_invoice(invoice_id, data):
    invoice = require_invoice(invoice_id)
    merged = {field: data.get(field, getattr(invoice, field)) for field in _UPDATABLE_FIELDS}
    month, year, amount = _validate(merged['month'], merged['year'], merged['amount'], merged['status'])
    invoice.month, invoice.year, invoice.amount = month, year, amount
    invoice.status = merged['status']
    invoice.building_id = merged['building_id']
    db.session.commit()
    return invoice


def _invoice_dir():
    directory = os.path.join(current_app.config['UPLOAD_ROOT'], 'invoices')
    os.makedirs(directory, exist_ok=True)
    return directory


def attach_invoice_pdf(invoice_id, file_storage):
    invoice = require_invoice(invoice_id)
    filename = secure_filename(file_storage.filename or '')
    if not filename.lower().endswith('.pdf'):
        raise ValidationError('Nur PDF-Dateien sind erlaubt')

    stored_name = f"{invoice.id}_{uuid.uuid4().hex[:8]}_{filename}"
    file_storage.save(os.path.join(_invoice_dir(), stored_name))
    _remove_pdf(invoice)
    invoice.pdf_path = stored_name
    db.session.commit()
    return invoice


def invoice_pdf_location(invoice):
    if not invoice.pdf_path:
        raise NotFoundError('Keine PDF-Datei vorhanden')
    return _invoice_dir(), invoice.pdf_path


def _remove_pdf(invoice):
    if not invoice.pdf_path:
        return
    path = os.path.join(_invoice_dir(), invoice.pdf_path)
    if os.path.exists(path):
        os.remove(path)


def delete_invoice_pdf(invoice_id):
    invoice = require_invoice(invoice_id)
    _remove_pdf(invoice)
    invoice.pdf_path = None
    db.session.commit()
    return invoice


def delete_invoice(invoice_id):
    invoice = require_invoice(invoice_id)
    _remove_pdf(invoice)
    db.session.delete(invoice)
    db.session.commit()
