"""Leave module — requests, status transitions, balance reconciliation."""
