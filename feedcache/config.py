import os
import tempfile

from dotenv import load_dotenv

# Environment setup
load_dotenv()

# Remote backend serving /news and /users
FEED_API_URL = os.getenv("FEED_API_URL", "http://localhost:8080")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", 30.0))

# Local cache
DATABASE_PATH = os.getenv("DATABASE_PATH", "feeds.db")
PAGE_SIZE = int(os.getenv("PAGE_SIZE", 10))
MAX_CACHED_ITEMS = int(os.getenv("MAX_CACHED_ITEMS", 50))
CACHE_EXPIRY_MINUTES = int(os.getenv("CACHE_EXPIRY_MINUTES", 30))
MEDIA_TEMP_DIR = os.getenv(
    "MEDIA_TEMP_DIR", os.path.join(tempfile.gettempdir(), "feedcache-media")
)

# Service
API_KEY = os.getenv("API_KEY")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
