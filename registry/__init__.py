"""
Reference collaborators: in-memory user directory and consent registry.
"""

from .user_directory import InMemoryUserDirectory, EMERGENCY_ROLES, EMERGENCY_PERMISSIONS
from .consent_registry import InMemoryConsentRegistry, ConsentSummary, assess_risk

__all__ = [
    "InMemoryUserDirectory",
    "InMemoryConsentRegistry",
    "ConsentSummary",
    "assess_risk",
    "EMERGENCY_ROLES",
    "EMERGENCY_PERMISSIONS",
]
