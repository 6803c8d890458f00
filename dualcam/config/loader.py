import logging
from pathlib import Path
from typing import Optional
import yaml
from dualcam.config.models import AppConfig

logger = logging.getLogger(__name__)

def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads the YAML config file. A missing file yields the defaults."""
    if config_path is None or not config_path.exists():
        logger.debug(f"Config file {config_path} not found, using defaults")
        return AppConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping at the top level")

    return AppConfig(**data)
