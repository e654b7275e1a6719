#!/usr/bin/env python3
"""
COFIN Back-Office Entry Point

Starts the FastAPI server with the back-office core. Host, port and the
document path come from COFIN_* environment variables (see cofin_core.config).
"""

import sys

from cofin_core.api import run_server
from cofin_core.config import get_config


if __name__ == "__main__":
    config = get_config()
    print(f"Starting COFIN back office on {config.api_host}:{config.api_port}")
    print(f"Document store: {config.data_path}")
    
    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down COFIN back office...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
