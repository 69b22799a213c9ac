# vetnet/core/config.py
import os
from typing import Literal
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - PUB_SUB_SERVICE how events reach the sockets: "memory" (single process) or "redis"
        - LIVEKIT_* issuer credentials for the media transport; leave empty to simulate audio
        - MAX_SPEAKERS cap on host + co-host + speaker roles per net
        - STORE_FILE optional JSON file the record store persists to
        - LOG_LEVEL / LOG_FORMAT root logger level and line format
    """

    # Load environment variables from the .env file
    load_dotenv()

    PUB_SUB_SERVICE: Literal["memory", "redis"] = os.getenv("PUB_SUB_SERVICE", "memory")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    LIVEKIT_API_KEY: str = os.getenv("LIVEKIT_API_KEY", "")
    LIVEKIT_API_SECRET: str = os.getenv("LIVEKIT_API_SECRET", "")
    LIVEKIT_URL: str = os.getenv("LIVEKIT_URL", "")
    LIVEKIT_TOKEN_TTL: int = int(os.getenv("LIVEKIT_TOKEN_TTL", "21600"))

    MAX_SPEAKERS: int = int(os.getenv("MAX_SPEAKERS", "10"))

    STORE_FILE: str = os.getenv("STORE_FILE", "")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "%(asctime)s | %(levelname)s | %(name)s | %(message)s")

settings = Settings()
