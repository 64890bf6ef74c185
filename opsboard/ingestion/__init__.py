"""
Data Ingestion Module
"""
from .seed_db import load_dataset, seed_demo_workspace

__all__ = [
    "load_dataset",
    "seed_demo_workspace",
]
