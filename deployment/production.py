#!/usr/bin/env python3
"""
Production deployment configuration for Mockup Studio.

Builds the Flask app with production settings and serves it with Waitress.
"""

import os
import sys
from pathlib import Path
from typing import List

from waitress import serve


def create_production_app():
    """Create production Flask application with proper configuration."""
    os.environ['FLASK_ENV'] = 'production'

    # Import after setting environment
    from mockup_studio import create_app

    overrides = {
        'DEBUG': False,
        'LOG_FILE': os.environ.get('LOG_FILE', '/var/log/mockup_studio/app.log'),
        'LOG_LEVEL': os.environ.get('LOG_LEVEL', 'INFO'),
        'TEMPLATES_DIR': os.environ.get('MOCKUP_TEMPLATES_DIR', '/opt/mockup_studio/environments'),
        'MAX_UPLOAD_SIZE': int(os.environ.get('MAX_UPLOAD_SIZE', '20971520')),  # 20MB
        'REQUEST_TIMEOUT_S': float(os.environ.get('REQUEST_TIMEOUT_S', '60')),
    }

    return create_app('production', overrides)


def check_production_requirements() -> List[str]:
    """Check that production requirements are met."""
    errors = []

    if not os.environ.get('SECRET_KEY'):
        errors.append("Environment variable SECRET_KEY is required")

    templates_dir = Path(os.environ.get('MOCKUP_TEMPLATES_DIR', '/opt/mockup_studio/environments'))
    if not templates_dir.is_dir():
        errors.append(f"Templates directory not found: {templates_dir}")

    if not os.environ.get('OPENAI_API_KEY'):
        print("⚠️  OPENAI_API_KEY not set - AI environment generation will return 503")

    return errors


if __name__ == '__main__':
    errors = check_production_requirements()
    if errors:
        print("❌ Production requirements not met:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    print("✅ Production requirements check passed")

    app = create_production_app()

    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', '8000'))
    threads = int(os.environ.get('THREADS', '8'))

    print(f"🚀 Starting Mockup Studio on {host}:{port}")
    print(f"   Threads: {threads}")

    try:
        serve(
            app,
            host=host,
            port=port,
            threads=threads,
            channel_timeout=120,
            cleanup_interval=30,
            connection_limit=1000,
            url_scheme='https' if os.environ.get('HTTPS', '').lower() == 'true' else 'http'
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")
