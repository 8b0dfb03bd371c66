#!/usr/bin/env python3
import os
import sys

print("=== Starting Domera App ===")
print(f"Python version: {sys.version}")
print(f"Current working directory: {os.getcwd()}")

upload_root = os.environ.get('UPLOAD_ROOT', 'uploads')


def _ensure_dir(path: str):
    """Legt ein Verzeichnis an, ohne beim Start abzubrechen."""
    directory = os.path.abspath(path)
    if os.path.exists(directory):
        return
    try:
        print(f"⚠️  Creating directory: {directory}")
        os.makedirs(directory, exist_ok=True)
    except PermissionError:
        # Keine Ausnahme hochwerfen, damit die App trotzdem startet
        print(f"❌ Keine Berechtigung zum Anlegen von {directory} – bitte Mount/Owner prüfen.")
    except OSError as exc:
        print(f"❌ Konnte Verzeichnis {directory} nicht anlegen: {exc}")


for raw_dir in ['data', upload_root, 'logs']:
    _ensure_dir(raw_dir)

try:
    from domera import create_app
    from domera.models import Company, User

    app = create_app()

    with app.app_context():
        users_count = User.query.count()
        if users_count == 0:
            print("⚠️  No users found - register a management company via POST /auth/register or run 'flask seed-demo'")
        else:
            print(f"✅ Found {users_count} users in {Company.query.count()} companies")

    if __name__ == '__main__':
        port = int(os.environ.get('PORT', 5000))
        print(f"🚀 Starting Flask server on port {port}...")
        print(f"📊 API docs at: http://localhost:{port}/api/docs")
        app.run(host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False))

except Exception as e:
    print(f"❌ Failed to start app: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
