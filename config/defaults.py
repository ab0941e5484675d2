DEFAULT_CONFIG_PATH = "config/octobot.yml"
DEFAULT_DB_PATH = "octobot.db"

# Quartz-style, seconds first.
DEFAULT_MEETING_CRON = "0 0 18 * * FRI"
DEFAULT_TIMEZONE = "UTC"

DEFAULT_INACTIVITY_DAYS = 30
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

DISCORD_MAX_MESSAGE_LEN = 2000

DEFAULT_ACTIVITY_REFRESH_HOURS = 0  # 0 disables the loop
DEFAULT_MEETING_RETRY_SECONDS = 60

DEFAULT_MANAGER_ROLE_NAME = "Board"

DEFAULT_WIKI_URL = ""
DEFAULT_WIKI_TIMEOUT_SECONDS = 10.0
