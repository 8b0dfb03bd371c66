import click
from flask.cli import with_appcontext

from domera.constants import ROLE_MANAGEMENT
from domera.services import apartment_service, auth_service, building_service, company_service, reading_service


@click.command('populate-apartment-ids')
@with_appcontext
def populate_apartment_ids_command() -> None:
    """Trägt fehlende Wohnungs-IDs in den Gebäuden nach."""
    updated = building_service.populate_apartment_ids()
    click.echo(f"{updated} Gebäude aktualisiert.")


@click.command('populate-reading-meta')
@with_appcontext
def populate_reading_meta_command() -> None:
    """Ergänzt Zählername, Zählernummer und Eichdatum in den Zählerstand-Gruppen."""
    updated = reading_service.populate_reading_meta()
    click.echo(f"{updated} Wohnungen aktualisiert.")


@click.command('seed-demo')
@click.option('--email', default='demo@domera.app', help='Login der Demo-Verwaltung')
@click.option('--password', default='Demo1234!', help='Passwort der Demo-Verwaltung')
@click.option('--apartments', default=4, type=int, help='Anzahl Wohnungen')
@with_appcontext
def seed_demo_command(email: str, password: str, apartments: int) -> None:
    """Legt eine Demo-Verwaltung mit Gebäude und Wohnungen an."""
    if auth_service.get_user_by_email(email):
        raise click.ClickException(f"Benutzer {email} existiert bereits.")

    user = auth_service.register_user(email, password, role=ROLE_MANAGEMENT,
                                      display_name='Demo Verwaltung', commit=False)
    company = company_service.register_company_for_user(user, 'Demo Hausverwaltung',
                                                        'Musterstraße 1, 10115 Berlin', '+49 30 123456')
    building = building_service.create_building(company.id, 'Musterhaus', 'Musterstraße 1, 10115 Berlin',
                                                manager=user)
    for number in range(1, apartments + 1):
        apartment_service.create_apartment(company.id, building.id, str(number))

    click.echo(f"Demo-Verwaltung '{company.name}' mit {apartments} Wohnungen angelegt.")
    click.echo(f"✓ Login: {email}")
