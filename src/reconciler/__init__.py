"""Deal reconciliation engine -- compares portal deals with CRM opportunities."""
