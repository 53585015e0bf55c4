import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables - explicitly look in the package's parent directory first
project_dir = Path(__file__).parent.parent
env_path = project_dir / '.env'
load_dotenv(dotenv_path=env_path)
load_dotenv()

logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"

# Check if running in serverless environment (Vercel)
IS_SERVERLESS = os.getenv("VERCEL") == "1" or os.getenv("AWS_LAMBDA_FUNCTION_NAME") is not None

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")

# --- Sessions -----------------------------------------------------------
SECRET_KEY = os.getenv("SECRET_KEY", "change_this_secret")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))
ADMIN_TOKEN_EXPIRE_HOURS = int(os.getenv("ADMIN_TOKEN_EXPIRE_HOURS", "24"))

AUTH_COOKIE_NAME = "auth_token"
ADMIN_COOKIE_NAME = "admin_token"

if SECRET_KEY == "change_this_secret":
    logger.warning("SECRET_KEY not set; using the development default")

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "typehub-admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "typehub-admin-2024")
# bcrypt hash; preferred over ADMIN_PASSWORD when present
ADMIN_PASSWORD_HASH = os.getenv("ADMIN_PASSWORD_HASH")

# --- Identity provider ----------------------------------------------------
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_TOKENINFO_URL = os.getenv("GOOGLE_TOKENINFO_URL", "https://oauth2.googleapis.com/tokeninfo")

# --- Payments -------------------------------------------------------------
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
CURRENCY = "INR"

if not RAZORPAY_KEY_ID or not RAZORPAY_KEY_SECRET:
    logger.warning("RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET not found in environment variables; payments will fail")

# database | redis | memory
ORDER_STORE = os.getenv("ORDER_STORE", "database")
REDIS_URL = os.getenv("REDIS_URL")
