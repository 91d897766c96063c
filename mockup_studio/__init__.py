"""
Mockup Studio - Flask Application Factory
Composites framed artwork onto room environments to produce realistic wall mockups
"""

import atexit
import os
from pathlib import Path
from typing import Any, Dict, Optional
from flask import Flask
from loguru import logger
from dotenv import load_dotenv

from .config import load_config, set_config
from .environments import TemplateEnvironmentSource
from .pipeline import MockupPipeline
from .workers import MockupWorkerPool


def create_app(config_name=None, config_overrides: Optional[Dict[str, Any]] = None):
    """Flask application factory"""

    # Load environment variables
    load_dotenv()

    app = Flask(__name__)

    # Load configuration
    config = load_config(config_name or os.getenv('FLASK_ENV', 'development'))
    if config_overrides:
        config = config.model_copy(update=config_overrides)
    set_config(config)
    app.config.update(config.model_dump())

    # Configure logging
    setup_logging(app)

    # Shared services
    pipeline = MockupPipeline(config=config)
    pool = MockupWorkerPool(pipeline, config.MAX_WORKERS)
    atexit.register(pool.shutdown, wait=False)
    app.extensions['mockup_pool'] = pool
    app.extensions['template_source'] = TemplateEnvironmentSource(
        config.TEMPLATES_DIR, config.TEMPLATE_CATALOG
    )

    # Register blueprints
    from . import routes
    app.register_blueprint(routes.bp)

    logger.info(f"Mockup Studio initialized in {config.FLASK_ENV} mode")

    return app


def setup_logging(app):
    """Configure loguru logging"""
    log_level = app.config.get('LOG_LEVEL', 'INFO')
    log_file = app.config.get('LOG_FILE', 'logs/app.log')

    # Ensure logs directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )
