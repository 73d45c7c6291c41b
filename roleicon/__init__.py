"""Per-member role icons: icon classification, role reconciliation and config."""
