"""Short link resolution, click ingestion and click analytics."""
