import os
import dotenv
import logging

dotenv.load_dotenv()

GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")
GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com").rstrip(
    "/"
)

OVERRIDE_LOGGING = logging.getLevelName(os.environ.get("OVERRIDE_LOGGING", "WARNING"))

TRACKER_CONFIG = os.environ.get("TRACKER_CONFIG", "branchtrack.yml")

# takes precedence over the cron entry of the tracker config file
TRACKER_CRON = os.environ.get("TRACKER_CRON")

# fanout or linear, takes precedence over the strategy of the tracker config file
TRACKER_STRATEGY = os.environ.get("TRACKER_STRATEGY")

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")

HTTP_CACHE_SIZE = int(os.environ.get("HTTP_CACHE_SIZE", 500))

WEB_HOST = os.environ.get("WEB_HOST", "127.0.0.1")
WEB_PORT = int(os.environ.get("WEB_PORT", 8000))
