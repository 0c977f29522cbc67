#!/usr/bin/env python3
"""
run.py — Launch obs-tiles without installing.

Usage (from the obs-tiles directory):
    python run.py start
    python run.py start --obs-host 192.168.1.20
    python run.py init-config
    python run.py check --password mypassword
    python run.py list-actions
"""
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent))

from obs_tiles.main import app

if __name__ == "__main__":
    app()
