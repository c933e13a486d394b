"""Coffee futures price ingestion (Robusta RM, Arabica KC)."""
