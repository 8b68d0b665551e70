#!/usr/bin/env python3
"""
Lending Back Office Entry Point

Starts the FastAPI server with the lending back office.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from core_lending.api import run_server
from core_lending.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Lending Back Office...")
    print(f"Backend: {config.backend_type}")
    print("All financial calculations use Decimal precision")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Lending Back Office...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
