"""
Shared modules for the care coordination service.

This package contains shared configuration and utilities used across the application.
"""

from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    CARE_CONTAINERS,
    CARE_CONTAINER_NAMES,
)

__all__ = [
    "COSMOS_ENDPOINT",
    "DATABASE_NAME",
    "CARE_CONTAINERS",
    "CARE_CONTAINER_NAMES",
]
