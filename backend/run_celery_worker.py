#!/usr/bin/env python3
# backend/run_celery_worker.py
"""
Development Celery runner for the practice space jobs.

Starts a worker with an embedded beat so the daily auto-cancellation sweep
and recurring top-up run locally. For local development only.
"""
import logging
import os
from pathlib import Path
import subprocess
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

logger = logging.getLogger("practice_space.run_celery_worker")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    concurrency = os.getenv("CELERY_CONCURRENCY", "2")
    logger.info(f"Starting Celery worker with beat (concurrency={concurrency})")

    cmd = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "practice_space.tasks.celery_app",
        "worker",
        "--beat",
        "--loglevel=info",
        f"--concurrency={concurrency}",
        "--max-tasks-per-child=100",
    ]

    subprocess.run(cmd, check=False)
