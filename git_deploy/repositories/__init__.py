from .backup_records import BACKUP_FILENAME, BackupRecordStore, FileBackupRecordStore
from .in_memory import InMemoryBackupRecordStore

__all__ = [
    "BACKUP_FILENAME",
    "BackupRecordStore",
    "FileBackupRecordStore",
    "InMemoryBackupRecordStore",
]
