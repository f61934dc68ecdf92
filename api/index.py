"""
Vercel entry point for the Maintenance Intake API
"""
import sys
import os

# Add parent directory to path
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if parent_dir not in sys.path:
    sys.path.insert(0, parent_dir)

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")

from mangum import Mangum
from src.main import app, configure_state
from src.infrastructure.database import init_database

# Lifespan is disabled in serverless; build state at import time instead
init_database()
configure_state(app)

handler = Mangum(app, lifespan="off")
