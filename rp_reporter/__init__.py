"""Report Portal reporting client."""

import logging

from .client import ReportingClient, now, status_to_level
from .errors import ReporterError, SettingsError, TransportError
from .session import LAUNCH_DISABLED, ReportingSession
from .settings import Settings, load_settings
from .tree import ItemNode, ItemTree, ItemType, TestItem

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ReportingClient",
    "now",
    "status_to_level",
    "ReporterError",
    "SettingsError",
    "TransportError",
    "LAUNCH_DISABLED",
    "ReportingSession",
    "Settings",
    "load_settings",
    "ItemNode",
    "ItemTree",
    "ItemType",
    "TestItem",
]
