"""Summary: In-memory registry of saved workflows plus a bounded activity log.

Importance: Single owner of the only long-lived mutable state in the command core.
Alternatives: Keep workflows in the database only and query on every read.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Callable

from relaypilot.models import ActivityLogEntry, WorkflowDefinition
from relaypilot.storage.sqlite_store import WorkflowStore


logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 50


class WorkflowRegistry:
    """Summary: CRUD over workflow definitions with an append-only activity log.

    Importance: Every mutation runs under one lock so readers never see a torn state;
    reads hand out tuples of frozen records. The store is written before memory, so a
    failed write leaves both unchanged.
    Alternatives: Use an actor or a single-threaded queue for mutations.
    """

    def __init__(
        self,
        store: WorkflowStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Summary: Build the registry, restoring persisted state when a store is given.

        Importance: Allows the CLI to see workflows created in earlier runs.
        Alternatives: Require callers to load state explicitly.
        """

        self._lock = threading.RLock()
        self._store = store
        self._clock = clock
        self._workflows: list[WorkflowDefinition] = []
        self._logs: deque[ActivityLogEntry] = deque(maxlen=MAX_LOG_ENTRIES)
        if store is not None:
            self._workflows.extend(store.list_workflows())
            self._logs.extend(store.list_logs(MAX_LOG_ENTRIES))

    def create(
        self,
        name: str,
        source_service: str,
        destination_service: str,
        filter: str = "",
        active: bool = True,
        transform_with_model: bool = True,
        target_recipient: str = "",
        target_chat_id: str = "",
    ) -> WorkflowDefinition:
        """Summary: Create and store a workflow with a fresh identifier.

        Importance: Identifiers come from the registry so they are never reused.
        Alternatives: Accept caller-provided identifiers and reject duplicates.
        """

        workflow = WorkflowDefinition(
            id=uuid.uuid4().hex,
            name=name,
            source_service=source_service,
            destination_service=destination_service,
            filter=filter,
            active=active,
            transform_with_model=transform_with_model,
            target_recipient=target_recipient,
            target_chat_id=target_chat_id,
        )
        with self._lock:
            if self._store is not None:
                self._store.save_workflow(workflow)
            self._workflows.append(workflow)
            self.append_log(f"Created workflow: {name}")
        return workflow

    def toggle_active(self, workflow_id: str) -> WorkflowDefinition | None:
        """Summary: Flip a workflow between started and stopped.

        Importance: The only post-creation change a workflow supports. Unknown ids are ignored.
        Alternatives: Expose separate start and stop operations.
        """

        with self._lock:
            for index, workflow in enumerate(self._workflows):
                if workflow.id != workflow_id:
                    continue
                updated = replace(workflow, active=not workflow.active)
                if self._store is not None:
                    self._store.save_workflow(updated)
                self._workflows[index] = updated
                verb = "Started" if updated.active else "Stopped"
                self.append_log(f"{verb} workflow: {updated.name}")
                return updated
        return None

    def delete(self, workflow_id: str) -> bool:
        """Summary: Remove a workflow by id.

        Importance: Deleting an unknown id is a no-op and logs nothing.
        Alternatives: Raise KeyError for unknown ids.
        """

        with self._lock:
            workflow = self.get(workflow_id)
            if workflow is None:
                return False
            if self._store is not None:
                self._store.delete_workflow(workflow_id)
            self._workflows = [item for item in self._workflows if item.id != workflow_id]
            self.append_log(f"Deleted workflow: {workflow.name}")
            return True

    def append_log(self, message: str) -> ActivityLogEntry:
        """Summary: Append a timestamped entry, keeping only the newest entries.

        Importance: Backs the activity view and the forward workflow summary.
        Alternatives: Log only through the logging module.
        """

        entry = ActivityLogEntry(timestamp=self._clock().strftime("%H:%M:%S"), message=message)
        with self._lock:
            if self._store is not None:
                self._store.append_log(entry, keep=MAX_LOG_ENTRIES)
            self._logs.append(entry)
        logger.info("Activity: %s", message)
        return entry

    def get(self, workflow_id: str) -> WorkflowDefinition | None:
        with self._lock:
            for workflow in self._workflows:
                if workflow.id == workflow_id:
                    return workflow
        return None

    def list_workflows(self) -> tuple[WorkflowDefinition, ...]:
        with self._lock:
            return tuple(self._workflows)

    def logs(self) -> tuple[ActivityLogEntry, ...]:
        with self._lock:
            return tuple(self._logs)
