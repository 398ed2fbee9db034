"""Configuration helpers for the garment PO tracker."""

# Runtime configuration assets that can be customised without touching the
# application logic.  ``supabase_schema`` maps logical table and column names
# onto the deployed Supabase project.
