# meditrack/settings/__init__.py

import os

settings_module = os.getenv('DJANGO_SETTINGS_MODULE', 'meditrack.settings.local')

if 'production' in settings_module:
    from .production import *
elif settings_module.endswith('.test'):
    from .test import *
else:
    from .local import *
