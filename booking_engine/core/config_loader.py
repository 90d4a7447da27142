import json
import os
import logging
from pathlib import Path
from typing import Dict, Any

from booking_engine.core.config import settings

logger = logging.getLogger("booking_engine")

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "data" / "marketplace_config.json"

def get_config_path() -> Path:
    if settings.MARKETPLACE_CONFIG_PATH:
        return Path(settings.MARKETPLACE_CONFIG_PATH)
    return DEFAULT_CONFIG_PATH

def load_marketplace_config() -> Dict[str, Any]:
    """
    Loads marketplace configuration from JSON file.
    Raises FileNotFoundError if config is missing.
    Returns: Dict containing config.
    """
    config_path = get_config_path()
    if not os.path.exists(config_path):
        logger.critical(f"❌ Configuration file '{config_path}' not found!")
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
            logger.info(f"✅ Configuration loaded for: {config.get('marketplace_name', 'Unknown')}")
            return config
    except json.JSONDecodeError as e:
        logger.critical(f"❌ Invalid JSON in marketplace configuration: {e}")
        raise ValueError(f"Invalid JSON in config file: {e}")

def get_notification_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Helper to get the notification section (switches and templates).
    Returns: empty dict when the section is missing.
    """
    return config.get("notifications", {})
