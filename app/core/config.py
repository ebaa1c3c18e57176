import os
from dotenv import load_dotenv

load_dotenv()

JWT_SECRET = os.getenv("JWT_SECRET", "xxx")
JWT_ALGO = os.getenv("JWT_ALGO", "HS256")

# rupees; only used to seed the fine_settings row on first start
DEFAULT_FINE_AMOUNT = os.getenv("DEFAULT_FINE_AMOUNT", "450")

# max difference (paise) between a client-sent amount and the server-computed one
AMOUNT_TOLERANCE_PAISE = int(os.getenv("AMOUNT_TOLERANCE_PAISE", "100"))

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    ).split(",")
    if o.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
