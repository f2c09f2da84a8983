"""
Test settings. In-memory SQLite, local memory cache.
"""

from .base import *

DEPLOYMENT_MODE = 'test'

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'meditrack-test',
    }
}

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

GENAI_API_URL = 'https://genai.test/v1beta'
GENAI_API_KEY = 'test-key'
GENAI_MODEL = 'test-model'
GENAI_TIMEOUT = 5

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'loggers': {
        'main': {'handlers': ['null'], 'propagate': False},
        'stock': {'handlers': ['null'], 'propagate': False},
        'billing': {'handlers': ['null'], 'propagate': False},
        'django': {'handlers': ['null'], 'propagate': False},
    },
}
