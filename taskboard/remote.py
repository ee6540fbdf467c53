"""
Remote Sync boundary.

RemoteSync is the narrow async interface the Board Controller persists
through. HttpRemoteSync talks to the project-management HTTP API;
InMemoryRemoteSync keeps everything in a dict (local development, tests).
"""
import asyncio
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set

import requests

from .errors import RemoteError, RemoteNotFound
from .schema import Actor, Comment, Task, utc_now

logger = logging.getLogger(__name__)

DEFAULT_API_PREFIX = "/api/project-management"


class RemoteSync(ABC):
    """Persistence boundary for board mutations."""

    @abstractmethod
    async def fetch_tasks_for_actor(self, email: str, role: str) -> List[Task]:
        ...

    @abstractmethod
    async def fetch_tasks_for_project(self, project_id: str) -> List[Task]:
        ...

    @abstractmethod
    async def create_task(self, draft: Task, email: str) -> Task:
        ...

    @abstractmethod
    async def update_task(self, task: Task, email: str) -> None:
        ...

    @abstractmethod
    async def update_task_comments(self, task_id: str, comments: List[Comment], email: str) -> None:
        ...

    @abstractmethod
    async def delete_task(self, task_id: str, email: str) -> None:
        ...

    @abstractmethod
    async def fetch_actor_profile(self, email: str) -> Actor:
        ...


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HTTP implementation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class HttpRemoteSync(RemoteSync):
    """
    HTTP client for the project-management API.

    Blocking requests calls run in a worker thread (asyncio.to_thread) so
    the board's event loop keeps handling UI events while a call is in
    flight. Each call goes through `requests.request` unless a session is
    given; a shared session is used by one worker thread at a time.

    Updates never carry the comment list; comments are written only
    through the comments endpoint.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        api_prefix: str = DEFAULT_API_PREFIX,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/")
        self.timeout = timeout
        self.session = session
        self._session_lock = threading.Lock()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, action: str, not_found_ok: bool = False, **kwargs) -> requests.Response:
        url = self._url(path)
        try:
            if self.session is None:
                r = requests.request(method, url, timeout=self.timeout, **kwargs)
            else:
                with self._session_lock:
                    r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{action}: {method} {url} failed: {e}")
            raise RemoteError(f"Failed to {action}", retryable=True) from e
        if r.status_code == 404 and not_found_ok:
            raise RemoteNotFound()
        if not r.ok:
            logger.error(f"{action}: {method} {url} returned {r.status_code}")
            raise RemoteError(f"Failed to {action}", status=r.status_code,
                              retryable=r.status_code >= 500)
        return r

    @staticmethod
    def _json(r: requests.Response, action: str) -> Any:
        try:
            return r.json()
        except ValueError as e:
            raise RemoteError(f"Failed to {action}: invalid JSON response", status=r.status_code) from e

    def _tasks(self, r: requests.Response, action: str) -> List[Task]:
        data = self._json(r, action)
        if not isinstance(data, list):
            raise RemoteError(f"Failed to {action}: expected a list", status=r.status_code)
        return [Task.from_dict(item) for item in data]

    # ── Sync calls (run in a worker thread) ──────────────────────────────────

    def _fetch_tasks_for_actor(self, email: str, role: str) -> List[Task]:
        r = self._request("GET", f"tasks/{email}", "fetch tasks", not_found_ok=True,
                          params={"role": role})
        return self._tasks(r, "fetch tasks")

    def _fetch_tasks_for_project(self, project_id: str) -> List[Task]:
        r = self._request("GET", "tasks/byProject", "fetch tasks", not_found_ok=True,
                          params={"projectId": project_id},
                          headers={"Content-Type": "application/json"})
        return self._tasks(r, "fetch tasks")

    def _create_task(self, draft: Task, email: str) -> Task:
        r = self._request("POST", "tasks", "add task",
                          json={"task": draft.to_dict(include_id=False), "email": email})
        return Task.from_dict(self._json(r, "add task"))

    def _update_task(self, task: Task, email: str) -> None:
        self._request("PATCH", "tasks", "update task", json={**task.to_dict(include_comments=False), "email": email})

    def _update_task_comments(self, task_id: str, comments: List[Comment], email: str) -> None:
        r = self._request("PATCH", "tasks/comments", "update task comments", json={
            "taskId": task_id,
            "comments": [c.to_dict() for c in comments],
            "email": email,
        })
        data = self._json(r, "update task comments")
        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            raise RemoteError(error or "Failed to update task comments", status=r.status_code)

    def _delete_task(self, task_id: str, email: str) -> None:
        self._request("DELETE", "tasks", "delete task", json={"id": task_id, "email": email})

    def _fetch_actor_profile(self, email: str) -> Actor:
        r = self._request("GET", f"employees/{email}", "fetch employee")
        return Actor.from_dict(self._json(r, "fetch employee"), email=email)

    # ── RemoteSync ───────────────────────────────────────────────────────────

    async def fetch_tasks_for_actor(self, email: str, role: str) -> List[Task]:
        return await asyncio.to_thread(self._fetch_tasks_for_actor, email, role)

    async def fetch_tasks_for_project(self, project_id: str) -> List[Task]:
        return await asyncio.to_thread(self._fetch_tasks_for_project, project_id)

    async def create_task(self, draft: Task, email: str) -> Task:
        return await asyncio.to_thread(self._create_task, draft, email)

    async def update_task(self, task: Task, email: str) -> None:
        await asyncio.to_thread(self._update_task, task, email)

    async def update_task_comments(self, task_id: str, comments: List[Comment], email: str) -> None:
        await asyncio.to_thread(self._update_task_comments, task_id, comments, email)

    async def delete_task(self, task_id: str, email: str) -> None:
        await asyncio.to_thread(self._delete_task, task_id, email)

    async def fetch_actor_profile(self, email: str) -> Actor:
        return await asyncio.to_thread(self._fetch_actor_profile, email)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# In-memory implementation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class InMemoryRemoteSync(RemoteSync):
    """
    Dict-backed remote. Assigns `task-N` ids and records every call.

    `fail_on` holds operation names ("create", "update", "delete", "fetch",
    "comments", "profile") that should raise RemoteError; `delay` makes
    each call yield to the loop for that many seconds first.
    """

    def __init__(self, tasks: Optional[List[Task]] = None, actors: Optional[Dict[str, Actor]] = None,
                 delay: float = 0.0):
        self.tasks: Dict[str, Task] = {t.id: t for t in tasks or []}
        self.actors: Dict[str, Actor] = dict(actors or {})
        self.delay = delay
        self.fail_on: Set[str] = set()
        self.calls: List[tuple] = []
        self._ids = itertools.count(len(self.tasks) + 1)

    async def _enter(self, operation: str, *args) -> None:
        self.calls.append((operation,) + args)
        await asyncio.sleep(self.delay)
        if operation in self.fail_on:
            raise RemoteError(f"{operation} failed", status=500, retryable=True)

    async def fetch_tasks_for_actor(self, email: str, role: str) -> List[Task]:
        await self._enter("fetch", email, role)
        if not self.tasks:
            raise RemoteNotFound()
        return list(self.tasks.values())

    async def fetch_tasks_for_project(self, project_id: str) -> List[Task]:
        await self._enter("fetch", project_id)
        found = [t for t in self.tasks.values() if t.project_id == project_id]
        if not found:
            raise RemoteNotFound()
        return found

    async def create_task(self, draft: Task, email: str) -> Task:
        await self._enter("create", draft.title, email)
        task_id = f"task-{next(self._ids)}"
        while task_id in self.tasks:
            task_id = f"task-{next(self._ids)}"
        created = Task.from_dict({**draft.to_dict(include_id=False), "id": task_id})
        if created.created_at is None:
            created.created_at = utc_now()
        self.tasks[task_id] = created
        return created

    async def update_task(self, task: Task, email: str) -> None:
        await self._enter("update", task.id, email)
        if task.id not in self.tasks:
            raise RemoteError("Failed to update task", status=404)
        self.tasks[task.id] = replace(task, comments=list(self.tasks[task.id].comments))

    async def update_task_comments(self, task_id: str, comments: List[Comment], email: str) -> None:
        await self._enter("comments", task_id, email)
        if task_id not in self.tasks:
            raise RemoteError("Failed to update task comments", status=404)
        self.tasks[task_id] = replace(self.tasks[task_id], comments=list(comments))

    async def delete_task(self, task_id: str, email: str) -> None:
        await self._enter("delete", task_id, email)
        if self.tasks.pop(task_id, None) is None:
            raise RemoteError("Failed to delete task", status=404)

    async def fetch_actor_profile(self, email: str) -> Actor:
        await self._enter("profile", email)
        actor = self.actors.get(email)
        if actor is None:
            raise RemoteError("Failed to fetch employee", status=404)
        return actor
