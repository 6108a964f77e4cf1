"""Test configuration for ensuring package imports and a throwaway environment."""

import os
import sys
import tempfile

ROOT_DIR = os.path.abspath(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# powerlunch.main reads settings at import time, so these must be in place first.
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(tempfile.gettempdir(), 'powerlunch-test.db')}")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key-0123456789abcdef")
os.environ.setdefault("APP_ENV", "test")
os.environ.pop("FCM_PROJECT_ID", None)
os.environ.pop("FCM_ACCESS_TOKEN", None)
os.environ.pop("FCM_SERVICE_ACCOUNT_FILE", None)
os.environ.pop("GOOGLE_APPLICATION_CREDENTIALS", None)
