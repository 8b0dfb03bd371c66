import re

from flask import current_app
from flask_mail import Message as MailMessage

from domera.errors import DomeraError
from domera.extensions import mail

_ANGLE_ADDRESS_RE = re.compile(r'<([^>]+)>')


class MailConfigurationError(DomeraError):
    status_code = 503


class MailDeliveryError(DomeraError):
    status_code = 502


def extract_sender_address(sender):
    """'Domera <noreply@domera.app>' -> 'noreply@domera.app'"""
    sender = (sender or '').strip()
    match = _ANGLE_ADDRESS_RE.search(sender)
    return (match.group(1) if match else sender).strip().lower()


def is_allowed_sender_domain(sender, allowed_domain):
    address = extract_sender_address(sender)
    if '@' not in address:
        return False
    return address.rsplit('@', 1)[1] == (allowed_domain or '').lower()


def _configured_sender():
    sender = current_app.config.get('MAIL_DEFAULT_SENDER')
    allowed_domain = current_app.config.get('MAIL_ALLOWED_SENDER_DOMAIN')
    if not sender:
        raise MailConfigurationError('E-Mail-Versand ist nicht konfiguriert (MAIL_DEFAULT_SENDER fehlt)')
    if allowed_domain and not is_allowed_sender_domain(sender, allowed_domain):
        raise MailConfigurationError(
            f'Ungültiger Absender: Die Adresse muss zur Domain {allowed_domain} gehören'
        )
    return sender


def _send(recipient, subject, body):
    msg = MailMessage(subject=subject, recipients=[recipient], sender=_configured_sender())
    msg.body = body
    try:
        mail.send(msg)
    except Exception as exc:
        current_app.logger.error(f"E-Mail an {recipient} fehlgeschlagen: {exc}", exc_info=True)
        raise MailDeliveryError('E-Mail konnte nicht versendet werden')
    current_app.logger.info(f"E-Mail '{subject}' an {recipient} versendet")


def send_invitation_email(email, invitation_link, login_link=None, existing_account=False):
    if existing_account:
        subject = 'Domera: Zugang zu Ihrer Wohnung freigeschaltet'
        body = '\n'.join([
            'Domera - Zugang zur Wohnung',
            '',
            'Guten Tag,',
            '',
            'für Ihr bestehendes Konto wurde der Zugang zu einer Wohnung in Domera freigeschaltet.',
            '1) Melden Sie sich an:',
            login_link or '',
            '2) Bestätigen Sie anschließend den Zugang über den Einladungslink:',
            invitation_link,
            '',
            'Falls Sie diese E-Mail nicht erwartet haben, können Sie sie ignorieren.',
            '',
            'Ihr Domera-Team',
        ])
    else:
        subject = 'Einladung zu Domera'
        body = '\n'.join([
            'Domera - Einladung',
            '',
            'Guten Tag,',
            '',
            'Sie wurden als Bewohner zu Domera eingeladen.',
            'Um die Registrierung abzuschließen, öffnen Sie bitte diesen Link:',
            invitation_link,
            '',
            'Falls Sie diese E-Mail nicht erwartet haben, können Sie sie ignorieren.',
            '',
            'Ihr Domera-Team',
        ])
    _send(email, subject, body)


def send_password_reset_email(email, reset_link):
    body = '\n'.join([
        'Domera - Passwort zurücksetzen',
        '',
        'Guten Tag,',
        '',
        'wir haben eine Anfrage zum Zurücksetzen Ihres Passworts erhalten.',
        'Über diesen Link können Sie ein neues Passwort festlegen:',
        reset_link,
        '',
        'Falls Sie die Anfrage nicht gestellt haben, ignorieren Sie diese E-Mail. Ihr Passwort bleibt unverändert.',
        '',
        'Ihr Domera-Team',
    ])
    _send(email, 'Passwort zurücksetzen - Domera', body)
