#!/usr/bin/env python3
"""
run.py — Launch ingest-switcher without installing.

Usage (from the ingest-switcher directory):
    python run.py start
    python run.py start --obs-password mypassword
    python run.py init-config
    python run.py check --password mypassword
    python run.py list-links
    python run.py switch main-ingest --source "Ingest Player"
"""
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent))

from ingest_switcher.main import app

if __name__ == "__main__":
    app()
