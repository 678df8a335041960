"""Base models shared by configuration and runtime state.

Kept separate from config.py so that log.py can import the config
base class without a circular import.
"""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

# ============================================================
# CLOSEABLE
# ============================================================

@runtime_checkable
class Closeable(Protocol):
    """Anything holding a resource released by close()."""

    def close(self) -> None:
        ...


class BaseCloseable(BaseModel):
    """Model that closes its Closeable fields when it is closed.

    Closing cascades down the tree:
    State -> Config -> Logger -> Sink. A failing child does not stop
    the remaining children from being closed.
    """

    def close(self):
        """Close every field that implements Closeable."""
        for field_name in self.__class__.model_fields:
            child = getattr(self, field_name, None)
            if isinstance(child, Closeable):
                try:
                    child.close()
                except Exception as e:
                    print(
                        f"Warning: error closing {field_name}: {e}",
                        file=sys.stderr,
                    )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False


# ============================================================
# MARKER BASES
# ============================================================

class BaseConfig(BaseCloseable):
    """A configuration section (YAML/env/CLI, read-only at runtime)."""


class BaseState(BaseCloseable):
    """A runtime state section (mutated while a workflow runs)."""


__all__ = ["Closeable", "BaseCloseable", "BaseConfig", "BaseState"]
