from formloom.store.database import Database
from formloom.store.files import LocalFileStore
from formloom.store.records import RecordStore
from formloom.store.repositories import FormRepository, ImportJobRepository

__all__ = ["Database", "FormRepository", "ImportJobRepository", "LocalFileStore", "RecordStore"]
