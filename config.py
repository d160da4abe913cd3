import os
import secrets
import platform
from dotenv import load_dotenv

# Load environment variables from .env file(s)
# 1) Project root .env
load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def ensure_data_directory():
    """Ensure the data directory exists (DATA_DIR env overrides the default ./data)."""
    data_dir = os.environ.get('DATA_DIR') or os.path.join(basedir, 'data')
    os.makedirs(data_dir, exist_ok=True)

    if not os.environ.get('DATABASE_URL') and platform.system() != "Windows":
        try:
            os.chmod(data_dir, 0o755)
        except (OSError, PermissionError):
            # Ignore permission errors (common on mounted volumes)
            pass

    return data_dir


# Initialize data directory
data_dir = ensure_data_directory()

# 2) Overlay data/.env so settings saved at runtime persist via the mounted volume
data_env_path = os.path.join(data_dir, '.env')
if os.path.exists(data_env_path):
    load_dotenv(dotenv_path=data_env_path, override=True)


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1', 'yes']


class Config:
    # Expose data directory path for other modules
    DATA_DIR = data_dir
    # Security
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY:
        if os.environ.get('FLASK_ENV') == 'development' or os.environ.get('FLASK_DEBUG'):
            SECRET_KEY = secrets.token_hex(32)
            print("WARNING: Using temporary SECRET_KEY for development. Set SECRET_KEY in .env for production!")
        else:
            # All gunicorn workers must share one key or CSRF tokens break
            raise ValueError("No SECRET_KEY set for Flask application. Please set it in your .env file.")

    # CSRF Settings
    WTF_CSRF_ENABLED = _env_flag('WTF_CSRF_ENABLED', 'true')
    WTF_CSRF_TIME_LIMIT = 3600  # 1 hour
    WTF_CSRF_SSL_STRICT = False

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Database configuration
    DATABASE_PATH = os.path.join(data_dir, 'recshelf.db')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f"sqlite:///{DATABASE_PATH}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Background jobs open their own sessions on worker threads
    SQLALCHEMY_ENGINE_OPTIONS = (
        {'connect_args': {'check_same_thread': False}}
        if SQLALCHEMY_DATABASE_URI.startswith('sqlite') else {}
    )

    # File uploads
    MAX_CONTENT_LENGTH = 20 * 1024 * 1024  # 20MB max CSV upload

    # Metadata sources
    GOOGLE_BOOKS_API_KEY = os.environ.get('GOOGLE_BOOKS_API_KEY')
    METADATA_HTTP_TIMEOUT = int(os.environ.get('METADATA_HTTP_TIMEOUT', 15))
    METADATA_USER_AGENT = os.environ.get(
        'METADATA_USER_AGENT',
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
        '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
    )
    METADATA_DEBUG = _env_flag('METADATA_DEBUG')

    # Background jobs
    JOB_WORKERS = int(os.environ.get('JOB_WORKERS', 4))

    # Admin API token (no default - admin endpoints stay locked until set)
    ADMIN_API_TOKEN = os.environ.get('ADMIN_API_TOKEN')

    # Application settings
    SITE_NAME = os.environ.get('SITE_NAME', 'RecShelf')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'ERROR')
