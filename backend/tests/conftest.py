"""Root conftest: shared test configuration."""

import os

# Tests never talk to real collaborators or a real database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("IDENTITY_URL", "http://identity.test")
os.environ.setdefault("LEDGER_URL", "http://ledger.test")
os.environ.setdefault("LOG_FORMAT", "text")
