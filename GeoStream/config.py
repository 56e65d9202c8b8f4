import os
import json
import dotenv

from GeoStream.utils.logger import logger
from typing import Any, Dict, Optional

# load config.json

CONFIG_PATH = os.path.join(os.getcwd(), "GeoStream", "config", "config.json")

def load_config() -> Dict[str, Any]:
    try:
        with open(CONFIG_PATH, "r") as f:
            config = json.load(f)
        logger.info(f"✅ Loaded config from {CONFIG_PATH}")
        return config
    except FileNotFoundError:
        logger.debug(f"No config file at {CONFIG_PATH}. Using default values.")
        return {}
    except json.JSONDecodeError as e:
        logger.error(f"❌ Invalid JSON in {CONFIG_PATH}: {e}. Using default values.")
        return {}

config = load_config()

# Read environment variables from .env file
env_file = os.path.join(os.getcwd(), ".env")
dotenv.load_dotenv(env_file, override=True)

def get_env_var(name: str, default = None) -> Optional[str]:
    value = os.getenv(name, default)
    if value is None or value == '':
        logger.debug(f"Missing environment variable: {name}. Using default: {default}")
        return default
    return value


def get_env_int(name: str, default = None) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.error(f"❌ Invalid value for environment variable {name}: {value}. Using default: {default}")
        return default


def get_env_float(name: str, default = None) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.error(f"❌ Invalid value for environment variable {name}: {value}. Using default: {default}")
        return default


def get_env_bool(name: str, default: bool = False) -> bool:
    return get_env_var(name, "TRUE" if default else "FALSE").upper() == "TRUE"


# Log Level
log_level = get_env_var("LOG_LEVEL", "INFO").upper()
log_file = get_env_bool("LOG_FILE", False)

# GeoStream API server
geostream_host = get_env_var("GEOSTREAM_HOST", "0.0.0.0")
geostream_port = get_env_int("GEOSTREAM_PORT", 7080)

# Security: required header on write endpoints (format: "HeaderName: Value")
headers = get_env_var("HEADERS", None)

# Query defaults
query_config = config.get("query", {})
default_field: str = get_env_var("DEFAULT_FIELD", query_config.get("default_field", "position"))
default_units: str = get_env_var("DEFAULT_UNITS", query_config.get("default_units", "kilometers"))
query_log: bool = get_env_bool("QUERY_LOG", bool(query_config.get("log", False)))
max_radius_km: float = get_env_float("MAX_RADIUS_KM", float(query_config.get("max_radius_km", 5000)))

# Seconds between store/query stats log lines (0 disables)
stats_interval: float = get_env_float("STATS_INTERVAL", float(config.get("stats_interval", 60)))
