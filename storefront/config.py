"""
Service configuration: read once from environment variables at import time.
"""

import os

# Row store backend: "sql" talks to DATABASE_URL through SQLAlchemy,
# "rest" talks to the hosted provider's REST endpoint.
STORE_BACKEND = os.getenv("STORE_BACKEND", "sql")

# Get DB connection string from environment variables.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")

# Hosted backend (PostgREST dialect).
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
REST_TIMEOUT_SECONDS = float(os.getenv("REST_TIMEOUT_SECONDS", "10"))

# Comma separated list of emails allowed into the admin back office.
# Empty by default: nobody is admin through the allow-list until it is set.
ADMIN_EMAILS = [
    email.strip().lower()
    for email in os.getenv("ADMIN_EMAILS", "").split(",")
    if email.strip()
]

# File backing the local persisted state (cart contents).
LOCAL_STORAGE_PATH = os.getenv("LOCAL_STORAGE_PATH", "./storefront_state.json")

# Order lifecycle events, published only when enabled.
EVENTS_ENABLED = os.getenv("EVENTS_ENABLED", "0").strip() in {"1", "true", "True", "yes"}
RABBITMQ_HOST = os.getenv("RABBITMQ_HOST", "rabbitmq")
EVENTS_EXCHANGE = os.getenv("EVENTS_EXCHANGE", "events")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
