import os

# commit2doc.main refuses to import without a secret; keep the limiter out of the way of the suite
os.environ.setdefault("API_SECRET_KEY", "test_secret_key_123")
os.environ.setdefault("RATE_LIMIT", "1000/minute")
