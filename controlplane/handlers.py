"""Synchronous entry points for running each worker as a function behind the workflow engine.

Each handler takes the engine's JSON event and returns the worker's JSON result.
Errors propagate so the engine can apply its own retry and catch rules.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from controlplane.services.dependencies import get_worker_table
from controlplane.services.sequencer import Payload


def _run(worker: str, event: Payload) -> Payload:
    return asyncio.run(get_worker_table()[worker](event))


def register_or_provision(event: Payload, context: Optional[Any] = None) -> Payload:
    return _run("register-or-provision", event)


def poll_status(event: Payload, context: Optional[Any] = None) -> Payload:
    return _run("poll-status", event)


def delete_infra(event: Payload, context: Optional[Any] = None) -> Payload:
    return _run("delete-infra", event)


def setup_access_control(event: Payload, context: Optional[Any] = None) -> Payload:
    return _run("setup-access-control", event)


def create_admin_identity(event: Payload, context: Optional[Any] = None) -> Payload:
    return _run("create-admin-identity", event)


def post_signup_sync(event: Payload, context: Optional[Any] = None) -> Payload:
    return _run("post-signup-sync", event)


def finalize_and_verify(event: Payload, context: Optional[Any] = None) -> Payload:
    return _run("finalize-and-verify", event)
