"""
Taskboard backend package.

Core pieces:
- taskboard.query: filtering, sorting and pagination of task records
- taskboard.csv_import: bulk CSV import with per-row error reporting
- taskboard.main: the FastAPI app exposing both over HTTP
"""

__version__ = "0.1.0"
