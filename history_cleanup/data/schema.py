"""
History store schema.

Instance tables carry the finish timestamp and the history time to live of
their definition (NULL means "keep forever"). Incidents and job logs may
reference a historic batch through ``batch_id``.
"""

from __future__ import annotations

from loguru import logger

from history_cleanup.data.db import get_db

TABLES = {
    "historic_process_instances": """
        CREATE TABLE IF NOT EXISTS historic_process_instances (
            id VARCHAR PRIMARY KEY,
            process_definition_key VARCHAR,
            start_time TIMESTAMP,
            end_time TIMESTAMP,
            history_ttl_days INTEGER
        )
    """,
    "historic_decision_instances": """
        CREATE TABLE IF NOT EXISTS historic_decision_instances (
            id VARCHAR PRIMARY KEY,
            decision_definition_key VARCHAR,
            evaluation_time TIMESTAMP,
            history_ttl_days INTEGER
        )
    """,
    "historic_case_instances": """
        CREATE TABLE IF NOT EXISTS historic_case_instances (
            id VARCHAR PRIMARY KEY,
            case_definition_key VARCHAR,
            create_time TIMESTAMP,
            close_time TIMESTAMP,
            history_ttl_days INTEGER
        )
    """,
    "historic_batches": """
        CREATE TABLE IF NOT EXISTS historic_batches (
            id VARCHAR PRIMARY KEY,
            type VARCHAR NOT NULL,
            total_jobs INTEGER DEFAULT 0,
            start_time TIMESTAMP,
            end_time TIMESTAMP
        )
    """,
    "historic_incidents": """
        CREATE TABLE IF NOT EXISTS historic_incidents (
            id VARCHAR PRIMARY KEY,
            incident_type VARCHAR,
            batch_id VARCHAR,
            process_instance_id VARCHAR,
            create_time TIMESTAMP
        )
    """,
    "historic_job_logs": """
        CREATE TABLE IF NOT EXISTS historic_job_logs (
            id VARCHAR PRIMARY KEY,
            job_id VARCHAR,
            batch_id VARCHAR,
            process_instance_id VARCHAR,
            timestamp TIMESTAMP
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_hpi_end_time ON historic_process_instances(end_time)",
    "CREATE INDEX IF NOT EXISTS idx_hdi_eval_time ON historic_decision_instances(evaluation_time)",
    "CREATE INDEX IF NOT EXISTS idx_hci_close_time ON historic_case_instances(close_time)",
    "CREATE INDEX IF NOT EXISTS idx_hb_end_time ON historic_batches(end_time)",
    "CREATE INDEX IF NOT EXISTS idx_hinc_batch_id ON historic_incidents(batch_id)",
    "CREATE INDEX IF NOT EXISTS idx_hjl_batch_id ON historic_job_logs(batch_id)",
]


def create_tables(db_path: str | None = None) -> None:
    """
    Create all history tables and indexes if they do not exist.

    Args:
        db_path: Optional database path
    """
    db = get_db(db_path)
    with db.connection() as conn:
        for ddl in TABLES.values():
            conn.execute(ddl)
        for ddl in INDEXES:
            conn.execute(ddl)
    logger.info(f"History schema ready ({len(TABLES)} tables) at {db.db_path}")
