"""
Data Quality Module
"""
from .order_issues import OrderFrames, OrderIssue, OrderIssueDetector, create_order_issue_detector

__all__ = [
    "OrderFrames",
    "OrderIssue",
    "OrderIssueDetector",
    "create_order_issue_detector",
]
