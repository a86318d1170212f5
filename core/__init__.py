"""Core data types, geodesy helpers, settings and errors shared by the analytics engines."""
