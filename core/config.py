import os
import logging
from decimal import Decimal
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass

APP_NAME = os.getenv("APP_NAME", "Marketplace")
APP_URL = (os.getenv("APP_URL") or os.getenv("NEXT_PUBLIC_APP_URL") or "http://localhost:3000").strip().rstrip("/")

# Payments (Stripe)
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
STRIPE_CURRENCY = (os.getenv("STRIPE_CURRENCY", "aed") or "aed").strip().lower()

# Settlement policy
COMMISSION_RATE = Decimal(os.getenv("COMMISSION_RATE", "0.10"))
EXPRESS_SHIPPING_COST = Decimal(os.getenv("EXPRESS_SHIPPING_COST", "25"))
STANDARD_SHIPPING_COST = Decimal(os.getenv("STANDARD_SHIPPING_COST", "0"))

MAIL_FROM = os.getenv("MAIL_FROM", "Orders <orders@your-domain.com>")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")

ADMIN_SECRET = (os.getenv("ADMIN_SECRET") or "").strip()

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("marketplace")
