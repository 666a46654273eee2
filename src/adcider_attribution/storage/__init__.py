"""
Module: storage
Description: Package initialization for the durable state layer.

This package contains the JSON-file backed state of the SDK:
- json_file: atomic whole-file JSON persistence
- sent_ids: ledger of delivered transaction ids
- retry_queue: queue of failed batches awaiting retry
- installation_id: persistent installation identifier
"""

__all__ = []
