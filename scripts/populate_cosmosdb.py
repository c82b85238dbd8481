"""
Cosmos DB Data Population Script for the MediFlow care service.

Creates the care containers if needed and populates sample doctors and
patient records using AzureCliCredential.

Usage:
    python scripts/populate_cosmosdb.py

Environment:
    COSMOS_ENDPOINT - Override the default Cosmos DB endpoint
    COSMOS_DATABASE - Override the default database name

Containers:

    POPULATED WITH SAMPLE DATA:
    - Care_Doctors           (partition: /id)
    - Care_Profiles          (partition: /id)
    - Care_Medications       (partition: /user_id)
    - Care_MedicalConditions (partition: /user_id)
    - Care_Allergies         (partition: /user_id)

    CREATED EMPTY (populated at runtime):
    - Care_Appointments      (partition: /appointment_id) - appointments and outbox
    - Care_MedicalEvents     (partition: /user_id) - patient timeline
    - Care_Reports           (partition: /id)
    - Care_SlotClaims        (partition: /id)
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from azure.cosmos import CosmosClient, PartitionKey
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.identity import AzureCliCredential

# Import configuration from shared module
from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    CARE_CONTAINERS,
    get_care_container_config,
)

# Import sample data
from data.sample.care_data import SAMPLE_DATA

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


# =============================================================================
# COSMOS DB OPERATIONS
# =============================================================================

def ensure_containers(database) -> None:
    """Create every care container that does not exist yet."""
    for key in CARE_CONTAINERS:
        container_name, partition_key = get_care_container_config(key)
        database.create_container_if_not_exists(
            id=container_name,
            partition_key=PartitionKey(path=partition_key),
        )
        logger.info(f"  {container_name} (partition: {partition_key})")


def upsert_items(container, items: List[Dict[str, Any]]) -> int:
    """Upsert items into a container; returns the number written."""
    count = 0
    for item in items:
        try:
            container.upsert_item(item)
            count += 1
        except CosmosHttpResponseError as e:
            logger.error(f"Failed to upsert item {item.get('id')}: {e}")
    return count


def main():
    """Main function to populate Cosmos DB with care sample data."""
    logger.info("=" * 60)
    logger.info("MediFlow Care - Cosmos DB Population Script")
    logger.info("=" * 60)
    logger.info(f"Endpoint: {COSMOS_ENDPOINT}")
    logger.info(f"Database: {DATABASE_NAME}")
    logger.info("Authentication: AzureCliCredential")
    logger.info("=" * 60)

    # Create credential and client using Azure CLI credential
    logger.info("\nAuthenticating with Azure CLI...")
    credential = AzureCliCredential()

    client = CosmosClient(COSMOS_ENDPOINT, credential=credential)

    logger.info(f"Connecting to database '{DATABASE_NAME}'...")
    try:
        database = client.create_database_if_not_exists(id=DATABASE_NAME)
    except CosmosHttpResponseError as e:
        logger.error(f"Database '{DATABASE_NAME}' could not be opened: {e}")
        logger.error("Please create the database first or check RBAC permissions")
        return

    logger.info("\n--- Care Containers ---")
    ensure_containers(database)

    logger.info("\n--- Populating Care Data ---")
    total_items = 0
    for key, items in SAMPLE_DATA.items():
        container_name, _ = get_care_container_config(key)
        container = database.get_container_client(container_name)
        count = upsert_items(container, items)
        logger.info(f"  {container_name}: {count} items")
        total_items += count

    logger.info("\n" + "=" * 60)
    logger.info(f"COMPLETE: {total_items} total items populated across {len(SAMPLE_DATA)} containers")
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
