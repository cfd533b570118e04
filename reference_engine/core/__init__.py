"""Domain types and pure helpers shared by the reference engine services."""
