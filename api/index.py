"""
Vercel Serverless Function wrapper for the Star Tracker API
"""
import sys
from pathlib import Path

# Add backend to Python path
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from star_tracker.main import app

# Vercel's @vercel/python builder expects a handler function
# For FastAPI (ASGI), we need Mangum to convert to Lambda format
from mangum import Mangum

# lifespan "auto" so the store and model clients are built per cold start
mangum_handler = Mangum(app, lifespan="auto")


def handler(event, context=None):
    """Vercel serverless function handler"""
    return mangum_handler(event, context)
