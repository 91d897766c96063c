#!/usr/bin/env python3
"""
Mockup Studio - Development Runner
Run this script to start the development server
"""

import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Set environment defaults
os.environ.setdefault('FLASK_APP', 'mockup_studio')
os.environ.setdefault('FLASK_ENV', 'development')

from mockup_studio import create_app


def main():
    """Main entry point"""
    print("=" * 60)
    print("Mockup Studio - Development Server")
    print("=" * 60)

    # Create and configure the app
    app = create_app()

    # Print startup info
    print(f"Environment: {app.config.get('FLASK_ENV', 'unknown')}")
    print(f"Debug mode: {app.config.get('DEBUG', False)}")
    print(f"Log level: {app.config.get('LOG_LEVEL', 'INFO')}")
    print(f"Pixels per inch: {app.config.get('PX_PER_INCH_DEFAULT')}")

    # Validate configuration files
    config_files = [
        'config/settings.yaml',
        app.config.get('TEMPLATE_CATALOG', 'config/environments.yaml'),
    ]
    missing_configs = [f for f in config_files if not Path(f).exists()]
    if missing_configs:
        print(f"⚠️  Missing config files: {', '.join(missing_configs)}")
        print("   The app may not function correctly.")

    # Check for template environments
    templates_dir = Path(app.config.get('TEMPLATES_DIR', 'assets/environments'))
    if not templates_dir.exists() or not any(templates_dir.glob('*.jpg')):
        print(f"⚠️  No template environments found in {templates_dir}/")
        print("   Upload an environment image with each request or add templates.")

    if not app.config.get('OPENAI_API_KEY'):
        print("⚠️  OPENAI_API_KEY not set - /api/environments/generate is disabled")

    print("-" * 60)
    print("Starting development server...")
    print("API root: http://localhost:5000/api/health")
    print("Press Ctrl+C to stop")
    print("-" * 60)

    # Run the development server
    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config.get('DEBUG', True),
        use_reloader=True,
        threaded=True
    )


if __name__ == '__main__':
    main()
