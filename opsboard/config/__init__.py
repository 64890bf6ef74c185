"""
Commerce Operations Dashboard
Configuration Module
"""
from .settings import AnalyticsSettings, RiskThresholds, SchedulerSettings, Settings, get_settings

__all__ = ["AnalyticsSettings", "RiskThresholds", "SchedulerSettings", "Settings", "get_settings"]
