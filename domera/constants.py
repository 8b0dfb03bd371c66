# Rollen
ROLE_MANAGEMENT = 'ManagementCompany'
ROLE_RESIDENT = 'Resident'
ROLE_ACCOUNTANT = 'Accountant'
USER_ROLES = (ROLE_MANAGEMENT, ROLE_RESIDENT, ROLE_ACCOUNTANT)

# Zählertypen
METER_TYPES = ('water', 'electricity', 'heat')

# Standard-Wasserzähler eines Gebäudes (Kalt-/Warmwasser)
DEFAULT_WATER_METER_TEMPLATES = ('ХВС', 'ГВС')
HOT_WATER_CODE = 'hwm'
COLD_WATER_CODE = 'cwm'
METER_DISPLAY_NAMES = {
    HOT_WATER_CODE: 'ГВС',
    COLD_WATER_CODE: 'ХВС',
}

# Ablesefenster: ab diesem Tag im Monat werden Zählerstände angenommen
DEFAULT_SUBMISSION_OPEN_DAY = 25

# Zählernummer / Eichdatum dürfen erst 30 Tage vor Fälligkeit geändert werden
METER_META_EDIT_WINDOW_DAYS = 30

# Mieter-Berechtigungen
PERMISSION_VIEW_DOCUMENTS = 'viewDocuments'
PERMISSION_SUBMIT_METER = 'submitMeter'
PERMISSION_REMOVE = 'remove'
TENANT_PERMISSIONS = (PERMISSION_VIEW_DOCUMENTS, PERMISSION_SUBMIT_METER, PERMISSION_REMOVE)
DEFAULT_TENANT_PERMISSIONS = (PERMISSION_VIEW_DOCUMENTS, PERMISSION_SUBMIT_METER)

# Einladungen
INVITATION_STATUSES = ('pending', 'accepted', 'revoked')
INVITATION_EXPIRY_HOURS = 72
INVITATION_RETENTION_DAYS = 30
INVITATION_LAWFUL_BASIS = 'contract'
INVITATION_PROCESSING_PURPOSE = 'resident-invitation'
PRIVACY_NOTICE_VERSION = 'v1'

# Kontostatus einer Wohnung
ACCOUNT_ACTIVATED = 'activated'
ACCOUNT_PENDING = 'pending'
ACCOUNT_NOT_ASSIGNED = 'notAssigned'

INVOICE_STATUSES = ('pending', 'paid', 'overdue')
PROJECT_STATUSES = ('planned', 'in-progress', 'completed')

# Validierung
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128
BUILDING_NAME_MIN_LENGTH = 2
BUILDING_NAME_MAX_LENGTH = 255
ADDRESS_MIN_LENGTH = 5
ADDRESS_MAX_LENGTH = 500
