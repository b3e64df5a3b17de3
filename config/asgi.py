"""ASGI entry point for the tractor-rental backend.

The rental API is plain request/response; tracking clients poll it, so no
WebSocket routing is configured here.
"""

import os
from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.prod')

application = get_asgi_application()
