from typing import List, Optional


class FormloomError(Exception):
    """Base exception for Formloom errors."""
    pass

class ConfigError(FormloomError):
    """Configuration loading specific errors."""
    pass

class DataSourceError(FormloomError):
    """Uploaded file or file storage specific errors."""
    pass

class ParseError(DataSourceError):
    """The spreadsheet could not be turned into a table (empty, unreadable, ambiguous headers)."""
    pass

class MappingError(FormloomError):
    """Column mapping is structurally invalid; nothing may be committed."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []

class PersistenceError(FormloomError):
    """The record store rejected a write."""
    pass

class FormNotFoundError(FormloomError):
    pass

class JobNotFoundError(FormloomError):
    pass

class JobStateError(FormloomError):
    """Requested transition is not allowed from the job's current status."""
    pass
