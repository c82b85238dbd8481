"""
Azure Cosmos DB Configuration.

Centralized configuration for all Cosmos DB settings used across the application.
This ensures consistency between the application, scripts, and data population tools.

Environment Variables (optional overrides):
    COSMOS_ENDPOINT - Override the default Cosmos DB endpoint
    COSMOS_DATABASE - Override the default database name
"""

import os

# =============================================================================
# COSMOS DB CONNECTION
# =============================================================================

COSMOS_ENDPOINT = os.getenv(
    "COSMOS_ENDPOINT",
    "https://localhost:8081/"
)

DATABASE_NAME = os.getenv(
    "COSMOS_DATABASE",
    "mediflow"
)

# =============================================================================
# CARE DATA CONTAINERS
# =============================================================================

# Format: logical_name -> (container_name, partition_key_path)
# Appointments and their outbox messages share a container and partition key
# so a status change and its event can be written in one transactional batch.
# Timeline events are partitioned by user so (user_id, id) is the dedupe key.
CARE_CONTAINERS = {
    "doctors": ("Care_Doctors", "/id"),
    "appointments": ("Care_Appointments", "/appointment_id"),
    "medical_events": ("Care_MedicalEvents", "/user_id"),
    "reports": ("Care_Reports", "/id"),
    "slot_claims": ("Care_SlotClaims", "/id"),
    "profiles": ("Care_Profiles", "/id"),
    "medications": ("Care_Medications", "/user_id"),
    "medical_conditions": ("Care_MedicalConditions", "/user_id"),
    "allergies": ("Care_Allergies", "/user_id"),
}

# Simple container name lookup (without partition key)
CARE_CONTAINER_NAMES = {
    key: name for key, (name, _) in CARE_CONTAINERS.items()
}

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_care_container_name(logical_name: str) -> str:
    """Get the actual container name for a logical care container name."""
    if logical_name in CARE_CONTAINER_NAMES:
        return CARE_CONTAINER_NAMES[logical_name]
    return logical_name


def get_care_container_config(logical_name: str) -> tuple:
    """Get (container_name, partition_key_path) for a care container."""
    if logical_name in CARE_CONTAINERS:
        return CARE_CONTAINERS[logical_name]
    raise ValueError(f"Unknown care container: {logical_name}")
