"""Pytest configuration: point the app at in-memory SQLite before any app module is imported."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret-not-for-production-use-0123456789"
os.environ["APP_ENV"] = "dev"
# Cheapest bcrypt cost keeps the suite fast.
os.environ["BCRYPT_ROUNDS"] = "4"
# The sweeper is exercised directly; no background task during tests.
os.environ["SESSION_SWEEP_INTERVAL_SEC"] = "0"
