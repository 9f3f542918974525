import os

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "kian_optics")

# Auth
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "super-secret-key")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Order settlement
SERVICE_CHARGE_RATE = float(os.getenv("SERVICE_CHARGE_RATE", "0.1"))
# "set" overwrites the shop balance on delivery, "increment" adds to it
SHOP_BALANCE_CREDIT_MODE = os.getenv("SHOP_BALANCE_CREDIT_MODE", "set").strip().lower()

# Email
RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
MAIL_FROM = os.getenv("MAIL_FROM", "Kian Optics <no-reply@kianoptics.co.ke>")
STORE_NAME = os.getenv("STORE_NAME", "Kian Optics")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@kianoptics.co.ke")

# Image hosting
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")

# M-Pesa
MPESA_BASE_URL = os.getenv("MPESA_BASE_URL", "https://api.safaricom.co.ke").rstrip("/")
MPESA_CONSUMER_KEY = os.getenv("MPESA_CONSUMER_KEY", "")
MPESA_CONSUMER_SECRET = os.getenv("MPESA_CONSUMER_SECRET", "")
MPESA_SHORTCODE = os.getenv("MPESA_SHORTCODE", "")
MPESA_PASSKEY = os.getenv("MPESA_PASSKEY", "")
MPESA_PAYBILL = os.getenv("MPESA_PAYBILL", "")
MPESA_CALLBACK_URL = os.getenv("MPESA_CALLBACK_URL", "http://localhost:8000/callback")
MPESA_TIMEOUT = float(os.getenv("MPESA_TIMEOUT", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))
