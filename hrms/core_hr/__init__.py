"""Core HR module — companies (tenants) and employees."""
