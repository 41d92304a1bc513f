import os
from pathlib import Path
from dotenv import load_dotenv # Cargador de secretos

BASE_DIR = Path(__file__).resolve().parent.parent

# --- CARGAR VARIABLES DE ENTORNO ---
# Carga el archivo .env desde la raíz del proyecto
load_dotenv(BASE_DIR / '.env')

# --- SEGURIDAD ---
SECRET_KEY = os.getenv('SECRET_KEY', 'nfse-insecure-dev-key')
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '').split(',')

# -------------------------------------------------
# Apps Instaladas
# -------------------------------------------------
INSTALLED_APPS = [
    'django.contrib.contenttypes',

    'nfse',
]

LANGUAGE_CODE = 'pt-br'
TIME_ZONE = os.getenv('TIME_ZONE', 'America/Sao_Paulo')
USE_I18N = True
USE_TZ = True

# --- Base de datos ---
# El módulo NFS-e no persiste modelos; sqlite basta para management commands/tests.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.getenv('DATABASE_NAME', str(BASE_DIR / 'db.sqlite3')),
    }
}

# --- Templates (plantillas XML de DPS/eventos) ---
TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {},
    },
]

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# -------------------------------------------------
# NFS-e Nacional (Sefin Nacional)
# -------------------------------------------------
# Producción restringida: https://sefin.producaorestrita.nfse.gov.br/SefinNacional
# Producción:          https://sefin.nfse.gov.br/SefinNacional
NFSE_BASE_URL = os.getenv(
    'NFSE_BASE_URL',
    'https://sefin.producaorestrita.nfse.gov.br/SefinNacional',
)
NFSE_CERTIFICATE_PATH = os.getenv('NFSE_CERTIFICATE_PATH') or None
NFSE_CERTIFICATE_PASSWORD = os.getenv('NFSE_CERTIFICATE_PASSWORD')

NFSE_SSL_VERIFY = os.getenv('NFSE_SSL_VERIFY', 'True').lower() == 'true'
NFSE_REQUEST_TIMEOUT = int(os.getenv('NFSE_REQUEST_TIMEOUT', 30))
NFSE_RETRY_MAX = int(os.getenv('NFSE_RETRY_MAX', 3))
NFSE_RETRY_BACKOFF = float(os.getenv('NFSE_RETRY_BACKOFF', 2))

# Validación XSD: 'xmllint' (proceso externo) o 'lxml' (en proceso)
NFSE_SCHEMA_VALIDATOR = os.getenv('NFSE_SCHEMA_VALIDATOR', 'xmllint')
NFSE_XMLLINT_PATH = os.getenv('NFSE_XMLLINT_PATH', 'xmllint')
NFSE_XSD_DIR = Path(os.getenv('NFSE_XSD_DIR', BASE_DIR / 'nfse' / 'services' / 'sefin' / 'xsd'))
NFSE_TEMP_DIR = os.getenv('NFSE_TEMP_DIR') or None
NFSE_VALIDATE_BEFORE_SEND = os.getenv('NFSE_VALIDATE_BEFORE_SEND', 'False').lower() == 'true'

# --- LOGGING ---
NFSE_LOG_FILE = os.getenv('NFSE_LOG_FILE')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': True,
        },
        'nfse.sefin': {
            'handlers': ['console'],
            'level': os.getenv('NFSE_LOG_LEVEL', 'INFO'),
            'propagate': True,
        },
    },
}

if NFSE_LOG_FILE:
    LOGGING['handlers']['file'] = {
        'level': 'INFO',
        'class': 'logging.handlers.RotatingFileHandler',
        'filename': NFSE_LOG_FILE,
        'maxBytes': 1024 * 1024 * 5,  # 5MB
        'backupCount': 5,
        'formatter': 'verbose',
    }
    LOGGING['loggers']['nfse.sefin']['handlers'].append('file')
