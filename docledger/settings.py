import os
from decimal import Decimal

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Read secret from env; prefer DJANGO_SECRET_KEY in deployments
SECRET_KEY = os.environ.get(
    'DJANGO_SECRET_KEY',
    os.environ.get(
        'SECRET_KEY',
        'django-insecure-k3v!7c#q0m2x@d9w_r1l$8t5u^n6b%y4h&e+j=p)a(s*f-g'
    )
)

DEBUG = os.environ.get('DJANGO_DEBUG', 'True').lower() in ('1', 'true', 'yes')

_hosts_env = os.environ.get('DJANGO_ALLOWED_HOSTS', '*')
ALLOWED_HOSTS = [h.strip() for h in _hosts_env.split(',') if h.strip()]

INSTALLED_APPS = [
    'documents',
    'rest_framework',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'docledger.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'docledger.wsgi.application'

# Database configuration
# Default: MySQL via env vars. Set USE_SQLITE=1 to boot with a local
# SQLite database (row locks become no-ops there).
DB_LOCK_WAIT_TIMEOUT = int(os.environ.get('DB_LOCK_WAIT_TIMEOUT', '10'))

if os.environ.get('USE_SQLITE', '0') in ('1', 'true', 'True', 'YES', 'yes'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.path.join(BASE_DIR, 'db.sqlite3'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.mysql',
            'NAME': os.environ.get('DB_NAME', 'docledger'),
            'USER': os.environ.get('DB_USER', 'docledger'),
            'PASSWORD': os.environ.get('DB_PASSWORD', ''),
            'HOST': os.environ.get('DB_HOST', '127.0.0.1'),
            'PORT': os.environ.get('DB_PORT', '3306'),
            'OPTIONS': {
                # Bound lock waits so a stuck SELECT ... FOR UPDATE rolls back
                'init_command': (
                    "SET sql_mode='STRICT_TRANS_TABLES', "
                    f"innodb_lock_wait_timeout={DB_LOCK_WAIT_TIMEOUT}"
                ),
                'charset': 'utf8mb4',
            },
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Static files storage
if DEBUG:
    _staticfiles_backend = 'whitenoise.storage.CompressedStaticFilesStorage'
    WHITENOISE_AUTOREFRESH = True
    WHITENOISE_USE_FINDERS = True
else:
    _staticfiles_backend = 'whitenoise.storage.CompressedManifestStaticFilesStorage'

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': _staticfiles_backend},
}

STATIC_URL = '/static/'
MEDIA_URL = '/media/'
STATIC_ROOT = os.path.join(BASE_DIR, 'staticfiles')
MEDIA_ROOT = os.path.join(BASE_DIR, 'storage')

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

_csrf_env = os.environ.get('CSRF_TRUSTED_ORIGINS', '')
CSRF_TRUSTED_ORIGINS = [o.strip() for o in _csrf_env.split(',') if o.strip()] if _csrf_env else []

# Trust proxy HTTPS header when running behind a reverse proxy
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# Cache: Redis when available so rate limits are shared across instances
REDIS_URL = os.environ.get('REDIS_URL', '')
if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': REDIS_URL,
        }
    }
else:
    CACHES = {
        'default': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache'},
    }

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'documents.views.ledger_exception_handler',
}

# Celery
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', REDIS_URL or 'redis://127.0.0.1:6379/0')
CELERY_TASK_ALWAYS_EAGER = os.environ.get('CELERY_TASK_ALWAYS_EAGER', '0').lower() in ('1', 'true', 'yes')

# Document lifecycle
DOCUMENT_BARCODE_PREFIX = os.environ.get('DOCUMENT_BARCODE_PREFIX', 'GCGM')
DOCUMENT_IDENTIFIER_MAX_ATTEMPTS = 5
# None means any tracking status may move to any other status.
# Set to {"created": ["shipped", ...], ...} to enforce allowed pairs.
DOCUMENT_TRACKING_TRANSITIONS = None
DOCUMENT_DEFAULT_PRICE_AMOUNT = Decimal(os.environ.get('DOCUMENT_DEFAULT_PRICE_AMOUNT', '0'))
DOCUMENT_DEFAULT_PRICE_CURRENCY = os.environ.get('DOCUMENT_DEFAULT_PRICE_CURRENCY', 'TRY')
DOCUMENT_PUBLIC_ORIGIN = os.environ.get('DOCUMENT_PUBLIC_ORIGIN', 'http://localhost:8000')
DOCUMENT_NOTIFY_BY_EMAIL = os.environ.get('DOCUMENT_NOTIFY_BY_EMAIL', '0').lower() in ('1', 'true', 'yes')

# Public verification
DOCUMENT_RATE_LIMITER = os.environ.get(
    'DOCUMENT_RATE_LIMITER',
    'documents.services.rate_limit.CacheRateLimiter' if REDIS_URL
    else 'documents.services.rate_limit.LocalRateLimiter',
)
VERIFY_RATE_LIMIT = (10, 60)          # requests, seconds
VERIFY_PREFILL_RATE_LIMIT = (30, 60)
VERIFY_SESSION_TTL_MINUTES = int(os.environ.get('VERIFY_SESSION_TTL_MINUTES', '5'))

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {'class': 'logging.StreamHandler'},
    },
    'loggers': {
        'django': {'handlers': ['console'], 'level': 'INFO'},
        'django.request': {'handlers': ['console'], 'level': 'WARNING', 'propagate': True},
        'documents': {'handlers': ['console'], 'level': os.environ.get('DOCUMENTS_LOG_LEVEL', 'INFO')},
    },
}

EMAIL_BACKEND = 'django.core.mail.backends.smtp.EmailBackend'
EMAIL_HOST = os.environ.get('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.environ.get('EMAIL_PORT', '587'))
EMAIL_HOST_USER = os.environ.get('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.environ.get('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = os.environ.get('EMAIL_USE_TLS', 'True').lower() in ('1', 'true', 'yes')
DEFAULT_FROM_EMAIL = os.environ.get('DEFAULT_FROM_EMAIL', 'no-reply@localhost')
