"""Auth module — bearer credential validation and capability checks."""
