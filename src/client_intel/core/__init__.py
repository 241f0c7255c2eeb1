"""Domain model and business logic. No HTTP, file or database imports live here."""
