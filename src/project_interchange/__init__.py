"""MS Project XML interchange for Gantt projects."""

__version__ = "0.1.0"
