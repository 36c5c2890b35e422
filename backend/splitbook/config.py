import os
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the package directory or parent directory
env_path = Path(__file__).parent / '.env'
if not env_path.exists():
    env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


def _env_flag(name, default="false"):
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET') or 'expense-sharing-secret'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=7)

    MONGO_URI = os.getenv('MONGO_URI', 'mongodb://localhost:27017/expense-sharing')
    MONGO_DB_NAME = os.getenv('MONGO_DB_NAME', 'expense-sharing')

    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Balance engine
    BALANCE_QUANTUM = Decimal(os.getenv('BALANCE_QUANTUM', '0.01'))
    PRECISION_DRIFT_TOLERANCE = Decimal(os.getenv('PRECISION_DRIFT_TOLERANCE', '0.000001'))

    # Zarinpal payment gateway
    ZARINPAL_MERCHANT_ID = os.getenv('ZARINPAL_MERCHANT_ID')
    ZARINPAL_BASE_URL = os.getenv('ZARINPAL_BASE_URL', 'https://sandbox.zarinpal.com')
    ZARINPAL_CALLBACK_URL = os.getenv('ZARINPAL_CALLBACK_URL', 'http://localhost:3000')
    ZARINPAL_MOCK_MODE = _env_flag('ZARINPAL_MOCK_MODE')


class TestingConfig(Config):
    TESTING = True
    JWT_SECRET_KEY = 'test-secret-key-long-enough-for-hs256-signing'
    MONGO_DB_NAME = 'expense-sharing-test'
    ZARINPAL_MERCHANT_ID = 'xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx'
    ZARINPAL_MOCK_MODE = True
