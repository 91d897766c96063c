"""
Configuration management for Mockup Studio
Loads settings from YAML files with environment variable overrides
"""

import os
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from loguru import logger


class AppConfig(BaseModel):
    """Main application configuration"""

    # Flask settings
    SECRET_KEY: str = Field(default_factory=lambda: os.urandom(24).hex())
    FLASK_ENV: str = "development"
    DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # Uploads
    MAX_UPLOAD_SIZE: int = 20 * 1024 * 1024  # 20MB
    ALLOWED_INPUT_FORMATS: List[str] = ["JPEG", "PNG", "WEBP"]

    # Dimension resolver
    PX_PER_INCH_DEFAULT: float = 40.0
    MAX_ARTWORK_PX: int = 6000  # long side of the framed raster

    # Wall placement
    WALL_ANCHOR_RATIO: float = 0.45
    WALL_SCALE_FRACTION: float = 0.40
    LAYOUT_MARGIN_PX: int = 16

    # Compositing
    CONTACT_SHADOW_MAX_ALPHA: float = 0.35
    CONTACT_SHADOW_OFFSET_RATIO: float = 0.02
    CONTACT_SHADOW_BLUR_RATIO: float = 0.025
    LIGHTING_TINT_STRENGTH: float = 0.06
    OUTPUT_FORMAT: str = "JPEG"
    OUTPUT_QUALITY: int = 95

    # Workers
    MAX_WORKERS: Optional[int] = None  # os.cpu_count() if None
    REQUEST_TIMEOUT_S: float = 60.0

    # Environments
    TEMPLATES_DIR: str = "assets/environments"
    TEMPLATE_CATALOG: str = "config/environments.yaml"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_CHAT_MODEL: str = "gpt-4o"
    OPENAI_IMAGE_MODEL: str = "dall-e-3"
    GENERATION_MAX_ATTEMPTS: int = 2
    GENERATION_TIMEOUT_S: float = 120.0
    THUMBNAIL_SIZE: List[int] = [400, 300]


def load_yaml_config(file_path: str) -> Dict:
    """Load configuration from YAML file"""
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading config file {file_path}: {e}")
        return {}


def load_config(environment: str = "development") -> AppConfig:
    """Load configuration with environment-specific overrides"""

    # Load base settings
    base_config = load_yaml_config("config/settings.yaml")

    # Load environment-specific settings
    env_config = load_yaml_config(f"config/settings_{environment}.yaml")

    # Merge configurations (env overrides base)
    config_dict = {**base_config, **env_config}

    # Apply environment variable overrides
    env_overrides = {
        'FLASK_ENV': os.getenv('FLASK_ENV', environment),
        'LOG_LEVEL': os.getenv('LOG_LEVEL'),
        'SECRET_KEY': os.getenv('SECRET_KEY'),
        'OPENAI_API_KEY': os.getenv('OPENAI_API_KEY'),
        'TEMPLATES_DIR': os.getenv('MOCKUP_TEMPLATES_DIR'),
        'MAX_WORKERS': os.getenv('MOCKUP_MAX_WORKERS'),
    }

    # Only include non-None values
    env_overrides = {k: v for k, v in env_overrides.items() if v is not None}
    config_dict.update(env_overrides)

    # Special handling for boolean DEBUG flag
    if 'FLASK_ENV' in config_dict:
        config_dict['DEBUG'] = config_dict['FLASK_ENV'] == 'development'

    try:
        return AppConfig(**config_dict)
    except ValueError as e:
        logger.error(f"Configuration validation error: {e}")
        # Return default config on validation error
        return AppConfig()


# Global config instance
_config_instance = None

def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config(os.getenv('FLASK_ENV', 'development'))
    return _config_instance


def set_config(config: AppConfig) -> None:
    """Replace the global configuration instance (used by the app factory and tests)"""
    global _config_instance
    _config_instance = config
