"""
ASGI config for swap_marketplace project.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'swap_marketplace.settings')

application = get_asgi_application()
