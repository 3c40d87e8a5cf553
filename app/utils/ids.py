"""Identifier utilities."""

from __future__ import annotations

import os
import socket
import uuid


def generate_id() -> str:
  """Return a new entity identifier."""
  return str(uuid.uuid4())


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_worker_id() -> str:
  """Return a worker identifier unique to this process."""
  return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
