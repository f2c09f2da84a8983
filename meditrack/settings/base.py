"""
Base settings for meditrack project.
Shared between local, production and test settings.
"""

from pathlib import Path
import os

from django.urls import reverse_lazy

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-q8v#3m!t2e$k0w@r7j^c5y&n1p*h9x(b4z)l6u_d+f-a=g%s')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    "unfold.contrib.forms",
    "unfold.contrib.inlines",
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'main',
    'stock',
    'billing',
    'corsheaders',
    'rest_framework',
    'drf_spectacular',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'main.middleware.JSONOnlyMiddleware',
]

ROOT_URLCONF = 'meditrack.urls'

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

WSGI_APPLICATION = 'meditrack.wsgi.application'


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Local time zone used for report day boundaries
CLINIC_TIME_ZONE = os.getenv('CLINIC_TIME_ZONE', 'Africa/Nairobi')


# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# CORS
CORS_ALLOW_ALL_ORIGINS = True


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# JWT Settings
JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', SECRET_KEY)
JWT_ALGORITHM = 'HS256'
JWT_EXPIRY_DAYS = int(os.getenv('JWT_EXPIRY_DAYS', '7'))


# Generative AI (LPO suggestions and stock prediction)
GENAI_API_URL = os.getenv('GENAI_API_URL', 'https://generativelanguage.googleapis.com/v1beta')
GENAI_API_KEY = os.getenv('GENAI_API_KEY', '')
GENAI_MODEL = os.getenv('GENAI_MODEL', 'gemini-2.0-flash')
GENAI_TIMEOUT = int(os.getenv('GENAI_TIMEOUT', '30'))


# Clinic defaults, overridable through the ClinicSettings row
CLINIC_DEFAULTS = {
    'clinic_name': 'MediTrack Pro',
    'address': '123 Health St, Wellness City',
    'phone': '+1 234 567 890',
    'currency': 'USD',
}


# Unfold Admin Configuration
UNFOLD = {
    "SITE_TITLE": "MediTrack Admin",
    "SITE_HEADER": "MediTrack",
    "SITE_URL": "/",
    "SITE_SYMBOL": "medication",

    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": True,
        "navigation": [
            {
                "title": "Dashboard",
                "separator": False,
                "items": [
                    {
                        "title": "Dashboard",
                        "icon": "dashboard",
                        "link": reverse_lazy("admin:index"),
                    },
                ],
            },
            {
                "title": "Inventory",
                "separator": True,
                "items": [
                    {
                        "title": "Items",
                        "icon": "inventory_2",
                        "link": reverse_lazy("admin:stock_item_changelist"),
                    },
                    {
                        "title": "Stock",
                        "icon": "warehouse",
                        "link": reverse_lazy("admin:stock_stock_changelist"),
                    },
                    {
                        "title": "Stock Takes",
                        "icon": "fact_check",
                        "link": reverse_lazy("admin:stock_stocktakesession_changelist"),
                    },
                    {
                        "title": "Internal Orders",
                        "icon": "swap_horiz",
                        "link": reverse_lazy("admin:stock_internalorder_changelist"),
                    },
                ],
            },
            {
                "title": "Procurement",
                "separator": True,
                "items": [
                    {
                        "title": "Vendors",
                        "icon": "local_shipping",
                        "link": reverse_lazy("admin:stock_vendor_changelist"),
                    },
                    {
                        "title": "Purchase Orders",
                        "icon": "receipt_long",
                        "link": reverse_lazy("admin:stock_localpurchaseorder_changelist"),
                    },
                ],
            },
            {
                "title": "Billing",
                "separator": True,
                "items": [
                    {
                        "title": "Bills",
                        "icon": "point_of_sale",
                        "link": reverse_lazy("admin:billing_bill_changelist"),
                    },
                    {
                        "title": "Patients",
                        "icon": "personal_injury",
                        "link": reverse_lazy("admin:billing_patient_changelist"),
                    },
                ],
            },
            {
                "title": "Users & Access",
                "separator": True,
                "items": [
                    {
                        "title": "Users",
                        "icon": "people",
                        "link": reverse_lazy("admin:main_user_changelist"),
                    },
                    {
                        "title": "Audit Log",
                        "icon": "history",
                        "link": reverse_lazy("admin:main_auditlog_changelist"),
                    },
                ],
            },
        ],
    },
}

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    # Bearer tokens are checked by main.helpers.require_login
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
}


SPECTACULAR_SETTINGS = {
    'TITLE': 'MediTrack',
    'DESCRIPTION': 'Pharmacy inventory, billing and procurement API',
    'VERSION': '1.0.0',

    'SECURITY': [{'bearerAuth': []}],

    'COMPONENTS': {
        'securitySchemes': {
            'bearerAuth': {
                'type': 'http',
                'scheme': 'bearer',
                'bearerFormat': 'JWT',
            }
        }
    },
}
