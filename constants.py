import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", None)

# 0 disables the bound
MAX_STORED_MESSAGES = int(os.getenv("MAX_STORED_MESSAGES", 10000))

MIN_AGE = 1
MAX_AGE = 150

PRIVATE_ROOM_SEPARATOR = "-"
GROUP_ID_PREFIX = "group-"
MESSAGE_ID_PREFIX = "msg-"
