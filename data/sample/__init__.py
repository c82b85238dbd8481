"""Sample data for local runs and Cosmos DB population."""
