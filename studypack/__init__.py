"""Study-pack ingestion and grounded-generation pipeline."""
