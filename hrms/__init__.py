"""HRMS — multi-tenant HR backend: employees, leave workflow, balances."""
