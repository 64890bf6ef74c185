"""
Data Generation Module
"""
from .generators import DemoDataset, DemoWorkspaceGenerator

__all__ = [
    "DemoDataset",
    "DemoWorkspaceGenerator",
]
