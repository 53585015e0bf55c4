"""
Vercel serverless function handler for the TypeHub API
"""
import sys
import os
from pathlib import Path

# Set Vercel environment flag before any imports
os.environ["VERCEL"] = "1"

# Make the typehub package importable from the project root
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

# Load environment variables from Vercel (they're already in os.environ)
# But also try to load from .env if it exists (for local testing)
from dotenv import load_dotenv
load_dotenv()

# Mangum adapts the ASGI app to the Lambda-style event Vercel sends
from mangum import Mangum

# Import the FastAPI app (this will detect serverless mode)
from typehub.main import app

handler = Mangum(app, lifespan="off")  # Disable lifespan events in serverless
