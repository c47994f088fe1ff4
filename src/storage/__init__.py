"""
Storage layer: 어댑터 인터페이스 + 로컬 참조 어댑터.

역할:
- RecordStore / BlobStore / AuditSink 인터페이스 (base.py)
- JSON 파일 레코드 저장소 (records.py)
- 파일시스템 blob 저장소 (blobs.py)
- orphan / escalation ledger (ledger.py)
"""

from .atomic import atomic_write_json, file_lock
from .base import AuditSink, BlobStore, RecordStore
from .blobs import LocalBlobStore
from .ledger import JsonLedger, OrphanQueue, ReconciliationLedger
from .records import JsonRecordStore

__all__ = [
    # base
    "RecordStore",
    "BlobStore",
    "AuditSink",
    # adapters
    "JsonRecordStore",
    "LocalBlobStore",
    # ledger
    "JsonLedger",
    "OrphanQueue",
    "ReconciliationLedger",
    # atomic
    "atomic_write_json",
    "file_lock",
]
