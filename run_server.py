#!/usr/bin/env python3
"""
Run script for the TaxBack claim service.

Usage:
    python run_server.py

Settings are read from TAXBACK_* environment variables or a .env file.
"""

import logging
import os
import sys

# Configure logging early, before imports that might use it
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

# Add src to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def main():
    """Run the claim service."""
    import uvicorn
    from src.utils.config import settings

    print("=" * 60)
    print("TaxBack Claims")
    print("=" * 60)
    print(f"Server: {settings.public_base_url}")
    print(f"Ledger backend: {settings.ledger_backend}")
    print(f"FHE backend: {settings.fhe_backend}")
    print("=" * 60)
    print()
    print("Endpoints:")
    print(f"  - Health: {settings.public_base_url}/health")
    print(f"  - Connect: POST {settings.public_base_url}/wallet/connect")
    print(f"  - Claims: {settings.public_base_url}/claims")
    print(f"  - Status: {settings.public_base_url}/status")
    print()

    uvicorn.run(
        "src.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()
