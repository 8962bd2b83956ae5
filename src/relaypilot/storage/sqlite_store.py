"""Summary: SQLite persistence for saved workflows and the activity log.

Importance: Keeps saved automations across CLI runs and API restarts.
Alternatives: Use an ORM or keep the registry purely in memory.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from relaypilot.models import ActivityLogEntry, WorkflowDefinition


class WorkflowStore:
    """Summary: SQLite-backed storage behind the workflow registry.

    Importance: Enables local-first persistence with no external services.
    Alternatives: Serialize the registry to a JSON file.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the registry loads.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS workflows (
                    position INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    source_service TEXT NOT NULL,
                    destination_service TEXT NOT NULL,
                    filter TEXT NOT NULL DEFAULT '',
                    active INTEGER NOT NULL,
                    transform_with_model INTEGER NOT NULL,
                    target_recipient TEXT NOT NULL DEFAULT '',
                    target_chat_id TEXT NOT NULL DEFAULT ''
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS activity_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    message TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def save_workflow(self, workflow: WorkflowDefinition) -> None:
        """Summary: Insert or update a workflow definition.

        Importance: Creation order is preserved because updates keep the original row.
        Alternatives: Delete and reinsert on every change.
        """

        with self._connection() as connection:
            connection.execute(
                """
                INSERT INTO workflows (
                    id, name, source_service, destination_service, filter,
                    active, transform_with_model, target_recipient, target_chat_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET active = excluded.active
                """,
                (
                    workflow.id,
                    workflow.name,
                    workflow.source_service,
                    workflow.destination_service,
                    workflow.filter,
                    int(workflow.active),
                    int(workflow.transform_with_model),
                    workflow.target_recipient,
                    workflow.target_chat_id,
                ),
            )
            connection.commit()

    def delete_workflow(self, workflow_id: str) -> None:
        with self._connection() as connection:
            connection.execute("DELETE FROM workflows WHERE id = ?", (workflow_id,))
            connection.commit()

    def list_workflows(self) -> list[WorkflowDefinition]:
        """Summary: Return stored workflows in creation order.

        Importance: Restores the registry on startup.
        Alternatives: Lazily load workflows on first lookup.
        """

        with self._connection() as connection:
            rows = connection.execute(
                """
                SELECT id, name, source_service, destination_service, filter,
                       active, transform_with_model, target_recipient, target_chat_id
                FROM workflows ORDER BY position
                """
            ).fetchall()
        return [
            WorkflowDefinition(
                id=row[0],
                name=row[1],
                source_service=row[2],
                destination_service=row[3],
                filter=row[4],
                active=bool(row[5]),
                transform_with_model=bool(row[6]),
                target_recipient=row[7],
                target_chat_id=row[8],
            )
            for row in rows
        ]

    def append_log(self, entry: ActivityLogEntry, keep: int) -> None:
        """Summary: Append a log entry and trim to the newest `keep` rows.

        Importance: Mirrors the registry's bounded log on disk.
        Alternatives: Keep the full history and trim on read.
        """

        with self._connection() as connection:
            connection.execute(
                "INSERT INTO activity_log (timestamp, message) VALUES (?, ?)",
                (entry.timestamp, entry.message),
            )
            connection.execute(
                """
                DELETE FROM activity_log WHERE id NOT IN (
                    SELECT id FROM activity_log ORDER BY id DESC LIMIT ?
                )
                """,
                (keep,),
            )
            connection.commit()

    def list_logs(self, limit: int) -> list[ActivityLogEntry]:
        with self._connection() as connection:
            rows = connection.execute(
                "SELECT timestamp, message FROM activity_log ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [ActivityLogEntry(timestamp=row[0], message=row[1]) for row in reversed(rows)]

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
        finally:
            connection.close()
