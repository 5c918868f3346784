#!/usr/bin/env python3
# backend/run_backend.py
"""
Development server runner for the practice space API.
For local development only.
"""
import logging
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

logger = logging.getLogger("practice_space.run_backend")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Starting practice space API on http://localhost:{port} (docs at /docs)")

    uvicorn.run(
        "practice_space.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_delay=0.5,  # Small delay to batch rapid file changes
        log_level="info",
        timeout_graceful_shutdown=5,
    )
