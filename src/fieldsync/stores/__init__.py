"""Durable in-process stores."""

from fieldsync.stores.upload_store import STORAGE_KEY, UploadRecordStore

__all__ = ["UploadRecordStore", "STORAGE_KEY"]
