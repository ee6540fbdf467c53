"""
Board Controller: load, create, edit, delete and drag-and-drop moves.

Consistency rules:
  load    - store replaced only after a successful fetch
  create  - id-gated: only the server-returned task is inserted
  edit    - local copy replaced after the server accepts it
  delete  - pessimistic: remote first, then local removal
  move    - optimistic: applied immediately, persisted in the background
            when it crosses columns; failures mark the task dirty

Every local change stamps the task with a fresh `revision` drawn from one
increasing counter, at the moment the change is made or the request is
issued. An acknowledgement never overwrites a local copy with a higher
revision; the task is marked dirty instead so it can be retried or
reverted.
"""
import asyncio
import itertools
import logging
import time
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from .dnd import DragEvent, TransitionTable, apply_move, plan_move, reindex_columns
from .errors import RemoteError, RemoteNotFound, TaskNotFound, Unauthenticated
from .notify import Notifier
from .remote import RemoteSync
from .schema import Actor, Comment, PersonSummary, Status, Task, extract_mentions, utc_now
from .store import TaskStore
from .view import ALL_EFFORTS, BoardView, EffortFilter, FilterState, board_stats

logger = logging.getLogger(__name__)

LOGIN_AGAIN = "User information is not available. Please try logging in again."


def make_comment_id() -> str:
    """Sortable unique comment id (ms timestamp + random hex)."""
    return f"comment-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class BoardController:
    """Owns the Task Store for one board session and keeps it in sync with the remote."""

    def __init__(
        self,
        remote: RemoteSync,
        store: Optional[TaskStore] = None,
        notifier: Optional[Notifier] = None,
        transitions: Optional[TransitionTable] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.remote = remote
        self.store = store if store is not None else TaskStore()
        self.notifier = notifier or Notifier()
        self.transitions = transitions
        self.filters = FilterState()
        self.actor: Optional[Actor] = None
        self._clock = clock
        # task id → last version the remote is known to hold
        self._dirty: Dict[str, Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._generation = 0
        self._revisions = itertools.count(1)
        self._view: Optional[BoardView] = None
        self._view_key = None

    # ──────────────────────────────────────────
    # View & filters
    # ──────────────────────────────────────────

    def _next_revision(self) -> int:
        return next(self._revisions)

    def view(self) -> BoardView:
        """Filtered, column-partitioned board; recomputed when store or filters change."""
        key = (self.store.version, self.filters.key())
        if self._view is None or key != self._view_key:
            self._view = self.filters.apply(self.store.snapshot())
            self._view_key = key
        return self._view

    def set_search_term(self, term: str) -> BoardView:
        self.filters.search_term = term or ""
        return self.view()

    def set_effort_filter(self, effort: EffortFilter = ALL_EFFORTS) -> BoardView:
        self.filters = FilterState(search_term=self.filters.search_term, effort=effort)
        return self.view()

    def stats(self) -> dict:
        return board_stats(self.store)

    # ──────────────────────────────────────────
    # Actor
    # ──────────────────────────────────────────

    def _require_actor(self, actor: Optional[Actor], action: str) -> Actor:
        if actor is None or not actor.email:
            logger.warning(f"Refusing to {action}: no resolved actor")
            self.notifier.error(LOGIN_AGAIN)
            raise Unauthenticated(f"Cannot {action} without a resolved actor")
        return actor

    async def resolve_actor(self, email: str) -> Actor:
        """Resolve the acting identity; board operations need this first."""
        if not email:
            self.notifier.error(LOGIN_AGAIN)
            raise Unauthenticated("No email to resolve an actor for")
        try:
            actor = await self.remote.fetch_actor_profile(email)
        except RemoteError as e:
            logger.error(f"Failed to resolve actor {email}: {e}")
            self.notifier.error("Failed to load your profile. Please try again.")
            raise
        self.actor = actor
        return actor

    async def open_board(self, email: str, project_id: Optional[str] = None) -> BoardView:
        """Resolve the actor, then load their board."""
        actor = await self.resolve_actor(email)
        return await self.load_board(actor, project_id=project_id)

    # ──────────────────────────────────────────
    # Load
    # ──────────────────────────────────────────

    async def load_board(self, actor: Optional[Actor], project_id: Optional[str] = None) -> BoardView:
        """Fetch the actor's tasks (or one project's) and replace the store."""
        actor = self._require_actor(actor, "load the board")
        try:
            if project_id:
                tasks = await self.remote.fetch_tasks_for_project(project_id)
            else:
                tasks = await self.remote.fetch_tasks_for_actor(actor.email, actor.role)
        except RemoteNotFound:
            logger.info(f"No tasks found for {project_id or actor.email}")
            tasks = []
        except RemoteError as e:
            logger.error(f"Failed to load tasks for {actor.email}: {e}")
            e.retryable = True
            self.notifier.error("Failed to load tasks. Please try again.")
            raise

        if self._dirty:
            logger.warning(f"Reload discards {len(self._dirty)} unsynced local change(s): {sorted(self._dirty)}")
        self.store.load(tasks)
        self._dirty.clear()
        self._generation += 1
        self.actor = actor
        logger.info(f"Loaded {len(tasks)} task(s) for {actor.email}")
        return self.view()

    async def refresh(self) -> BoardView:
        return await self.load_board(self.actor)

    # ──────────────────────────────────────────
    # Create / edit / delete
    # ──────────────────────────────────────────

    def _validate(self, task: Task, failure: str) -> None:
        try:
            task.validate()
        except ValueError as e:
            self.notifier.error(f"{failure} {e}.")
            raise

    async def create_task(self, draft: Task, actor: Optional[Actor]) -> Task:
        """Persist a draft; the store only ever sees the server's copy."""
        actor = self._require_actor(actor, "create a task")
        if not draft.is_draft:
            raise ValueError(f"create_task expects a draft, got id {draft.id}")
        self._validate(draft, "Failed to add task.")

        now = self._clock()
        in_column = [t.order for t in self.store if t.status == draft.status and t.order is not None]
        next_order = max(in_column) + 1 if in_column else 0
        prepared = replace(
            draft,
            created_at=draft.created_at or now,
            last_updated=now,
            reporter=draft.reporter or PersonSummary(id=actor.id or actor.email, name=actor.name),
            order=draft.order if draft.order is not None else next_order,
        )
        prepared = prepared.with_status(prepared.status, now) if prepared.status == Status.DONE else prepared.normalized(now)

        try:
            created = await self.remote.create_task(prepared, actor.email)
        except RemoteError as e:
            logger.error(f"Failed to add task '{draft.title}': {e}")
            self.notifier.error("Failed to add task. Please try again.")
            raise
        if created.is_draft:
            self.notifier.error("Failed to add task. Please try again.")
            raise RemoteError("Server returned a task without an id")

        created = created.normalized(now)
        self.store.insert(created)
        logger.info(f"Created task {created.id}: {created.title}")
        self.notifier.success("Task added successfully.")
        return created

    def _prepare_edit(self, task: Task, current: Task, now: datetime) -> Task:
        if task.status != current.status:
            # Let with_status decide the completion stamp from the old status
            base = replace(task, status=current.status, completed_at=current.completed_at)
            prepared = base.with_status(task.status, now)
        else:
            prepared = replace(task.normalized(now), last_updated=now)
        return replace(prepared, order=current.order, revision=self._next_revision())

    async def edit_task(self, task: Task, actor: Optional[Actor]) -> Task:
        """Persist an edit, then adopt the caller's copy locally."""
        actor = self._require_actor(actor, "update a task")
        current = self.store.get(task.id)
        if current is None:
            self.notifier.error("Failed to update task. Please try again.")
            raise TaskNotFound(task.id)
        self._validate(task, "Failed to update task.")

        prepared = self._prepare_edit(task, current, self._clock())
        generation = self._generation
        try:
            await self.remote.update_task(prepared, actor.email)
        except RemoteError as e:
            logger.error(f"Failed to update task {task.id}: {e}")
            self.notifier.error("Failed to update task. Please try again.")
            raise

        self.notifier.success("Task updated successfully.")
        latest = self.store.get(task.id)
        if latest is None or generation != self._generation:
            logger.info(f"Task {task.id} left the board while its update was in flight")
            return prepared
        if latest.revision > prepared.revision:
            # A local change made after this request was issued wins
            logger.warning(f"Stale update acknowledgement for {task.id} (rev {prepared.revision} < {latest.revision})")
            self._dirty[task.id] = prepared
            return latest

        with self.store.batch():
            self.store.replace(prepared)
            if prepared.status != current.status:
                self._reindex({current.status, prepared.status})
        self._dirty.pop(task.id, None)
        return self.store.get(task.id) or prepared

    async def delete_task(self, task_id: str, actor: Optional[Actor]) -> None:
        """Delete remotely first; the local copy goes only after success."""
        actor = self._require_actor(actor, "delete a task")
        try:
            await self.remote.delete_task(task_id, actor.email)
        except RemoteError as e:
            logger.error(f"Failed to delete task {task_id}: {e}")
            self.notifier.error("Failed to delete task. Please try again.")
            raise
        if task_id in self.store:
            self.store.remove(task_id)
        else:
            logger.warning(f"Deleted task {task_id} was not on the local board")
        self._dirty.pop(task_id, None)
        self.notifier.success("Task deleted successfully.")

    # ──────────────────────────────────────────
    # Drag and drop
    # ──────────────────────────────────────────

    def move_task(self, event: DragEvent) -> Optional["asyncio.Task[bool]"]:
        """
        Apply a drag-and-drop move immediately.

        Returns the background persist job when the move crosses columns
        and can be persisted, otherwise None. Same-column reordering is
        local to this session.
        """
        plan = plan_move(
            self.store.snapshot(),
            event,
            search_term=self.filters.search_term,
            effort=self.filters.effort,
            now=self._clock(),
            transitions=self.transitions,
        )
        if plan is None:
            return None
        moved = replace(plan.moved, revision=self._next_revision())
        plan = replace(plan, moved=moved)
        apply_move(self.store, plan)
        if not plan.crosses_columns:
            return None

        if self.actor is None:
            logger.warning(f"Move of {plan.task_id} not persisted: no resolved actor")
            self._dirty.setdefault(plan.task_id, plan.previous)
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Move of {plan.task_id} not persisted: no running event loop")
            self._dirty.setdefault(plan.task_id, plan.previous)
            return None

        job = loop.create_task(self._persist(plan.moved, plan.previous, self.actor, self._generation))
        self._inflight.add(job)
        job.add_done_callback(self._inflight.discard)
        return job

    async def _persist(self, task: Task, previous: Task, actor: Actor, generation: int) -> bool:
        try:
            await self.remote.update_task(task, actor.email)
        except RemoteError as e:
            # Silent to the user: the board already shows the move
            logger.warning(f"Background persist of {task.id} failed, keeping local state: {e}")
            if generation == self._generation and task.id in self.store:
                self._dirty.setdefault(task.id, previous)
            return False
        self._acknowledge(task, generation)
        return True

    def _acknowledge(self, sent: Task, generation: int) -> None:
        if generation != self._generation:
            return
        current = self.store.get(sent.id)
        if current is None:
            self._dirty.pop(sent.id, None)
        elif current.revision == sent.revision:
            self._dirty.pop(sent.id, None)
        else:
            self._dirty[sent.id] = sent

    def _reindex(self, columns: Set[Status]) -> None:
        _, changed = reindex_columns(list(self.store.snapshot()), columns)
        with self.store.batch():
            for task in changed:
                self.store.replace(task)

    async def drain(self) -> None:
        """Wait for every in-flight background persist."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ──────────────────────────────────────────
    # Dirty tasks
    # ──────────────────────────────────────────

    def dirty_tasks(self) -> List[Task]:
        """Local tasks whose latest change the remote has not acknowledged."""
        return [t for t in self.store if t.id in self._dirty]

    def is_dirty(self, task_id: str) -> bool:
        return task_id in self._dirty

    async def retry_dirty(self) -> List[str]:
        """Re-send the local copy of every dirty task. Returns the ids now in sync."""
        actor = self._require_actor(self.actor, "sync tasks")
        synced: List[str] = []
        failures: List[RemoteError] = []
        generation = self._generation
        for task_id in list(self._dirty):
            current = self.store.get(task_id)
            if current is None:
                self._dirty.pop(task_id, None)
                continue
            try:
                await self.remote.update_task(current, actor.email)
            except RemoteError as e:
                logger.warning(f"Retry of {task_id} failed: {e}")
                failures.append(e)
                continue
            self._acknowledge(current, generation)
            if task_id not in self._dirty:
                synced.append(task_id)
        if failures:
            self.notifier.error(f"Failed to sync {len(failures)} task(s). Please try again.")
            raise failures[0]
        if synced:
            self.notifier.success(f"Synced {len(synced)} task(s).")
        return synced

    def revert_dirty(self, task_id: str) -> Task:
        """Put back the version the remote holds, discarding the local change."""
        snapshot = self._dirty.pop(task_id, None)
        current = self.store.get(task_id)
        if snapshot is None or current is None:
            raise TaskNotFound(task_id)
        restored = replace(snapshot, revision=self._next_revision())
        with self.store.batch():
            self.store.replace(restored)
            self._reindex({current.status, restored.status})
        logger.info(f"Reverted {task_id} to {restored.status.value}")
        return self.store.get(task_id) or restored

    # ──────────────────────────────────────────
    # Comments
    # ──────────────────────────────────────────

    async def _persist_comments(self, task: Task, comments: List[Comment], actor: Actor, done: str) -> Task:
        try:
            await self.remote.update_task_comments(task.id, comments, actor.email)
        except RemoteError as e:
            logger.error(f"Failed to update comments on {task.id}: {e}")
            self.notifier.error("Failed to update task comments. Please try again.")
            raise
        self.notifier.success(done)
        latest = self.store.get(task.id)
        if latest is None:
            return replace(task, comments=comments)
        updated = replace(latest, comments=comments, revision=self._next_revision())
        self.store.replace(updated)
        return updated

    def _task_for_comment(self, task_id: str) -> Task:
        task = self.store.get(task_id)
        if task is None:
            self.notifier.error("Failed to update task comments. Please try again.")
            raise TaskNotFound(task_id)
        return task

    async def add_comment(self, task_id: str, content: str, actor: Optional[Actor]) -> Comment:
        actor = self._require_actor(actor, "comment")
        task = self._task_for_comment(task_id)
        if not (content or "").strip():
            self.notifier.error("Failed to update task comments. A comment cannot be empty.")
            raise ValueError("Comment content is required")
        comment = Comment(
            id=make_comment_id(),
            content=content.strip(),
            author=actor.name or actor.email,
            task_id=task_id,
            created_at=self._clock(),
            mentions=extract_mentions(content),
        )
        await self._persist_comments(task, list(task.comments) + [comment], actor, "Added comment successfully.")
        return comment

    async def toggle_reaction(self, task_id: str, comment_id: str, emoji: str, actor: Optional[Actor]) -> Comment:
        actor = self._require_actor(actor, "react")
        task = self._task_for_comment(task_id)
        comments = list(task.comments)
        for idx, comment in enumerate(comments):
            if comment.id == comment_id:
                comments[idx] = comment.toggle_reaction(emoji, actor.id or actor.email)
                await self._persist_comments(task, comments, actor, "Reaction updated.")
                return comments[idx]
        self.notifier.error("Failed to update task comments. Please try again.")
        raise ValueError(f"Comment {comment_id} not found on task {task_id}")
