"""Global pytest configuration."""

import os

# Keep tests independent of a developer's .env
os.environ.setdefault("GENERATION_STRATEGY", "ai_first")
os.environ.setdefault("METRICS_ENABLED", "false")
