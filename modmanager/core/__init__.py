"""Core logic: data model, version comparison, reconciliation and storage."""
