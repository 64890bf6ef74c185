"""
Scheduled jobs
"""
