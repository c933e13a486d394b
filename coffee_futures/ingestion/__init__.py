"""Data ingestion: collectors for the quote source and the rate service."""
