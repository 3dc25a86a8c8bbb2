"""Test fixtures and seed data helpers."""

from tests.fixtures.history_db import (
    insert_batch,
    insert_case_instance,
    insert_decision_instance,
    insert_incident,
    insert_job_log,
    insert_process_instance,
    table_ids,
)

__all__ = [
    "insert_batch",
    "insert_case_instance",
    "insert_decision_instance",
    "insert_incident",
    "insert_job_log",
    "insert_process_instance",
    "table_ids",
]
