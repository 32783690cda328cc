"""Sales data access: ORM models, query building, store and export."""
