"""Pytest bootstrap configuration.

Set the environment before test collection imports modules that read
settings at import time.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PHONEPE__MERCHANT_ID", "M_TEST")
os.environ.setdefault("PHONEPE__CLIENT_ID", "client-test")
os.environ.setdefault("PHONEPE__CLIENT_SECRET", "client-secret-test")
os.environ.setdefault("PHONEPE__WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("PHONEPE__SALT_INDEX", "1")
os.environ.setdefault("PHONEPE__ENV", "sandbox")
