"""
Per-request source metadata capture.

A contextvar-backed recorder used by the resolver tiers and search sources to report
what happened to each collaborator call:
- status: ok / empty / error / timeout / skipped / cache
- result counts, durations and error text

The API layer attaches this to responses under `meta.sources` for transparency.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any


@dataclass
class SourceMeta:
    sources: dict[str, dict[str, Any]] = field(default_factory=dict)

    def record(self, name: str, payload: dict[str, Any]) -> None:
        if not name:
            return
        self.sources[name] = dict(payload)


_source_meta_var: contextvars.ContextVar[SourceMeta | None] = contextvars.ContextVar(
    "wayfinder_source_meta", default=None
)


def record_source(name: str, payload: dict[str, Any]) -> None:
    meta = _source_meta_var.get()
    if not meta:
        return
    meta.record(name, payload)


@contextmanager
def capture_source_meta() -> SourceMeta:
    meta = SourceMeta()
    token = _source_meta_var.set(meta)
    try:
        yield meta
    finally:
        _source_meta_var.reset(token)
