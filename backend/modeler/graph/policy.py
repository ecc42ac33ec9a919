"""
Partial-failure policy for multi-step graph mutations.

Each multi-step operation declares an OperationPolicy at module level, so
"all-or-nothing" versus "best-effort" is visible next to the code that
uses it instead of being buried in try/except blocks.

    with Operation(db, CREATE_ATTRIBUTE) as op:
        attribute = _insert_attribute(...)
        op.step("fk_relationship", _create_fk_relationship, ...)

- atomic=True: the whole block is one transaction; any untolerated
  failure rolls everything back.
- tolerated steps run inside a SAVEPOINT. A failure rolls back only that
  step, gets logged and is recorded in ``op.skipped``.
- atomic=False: each step commits on success. On a hard failure the
  registered compensations run in reverse order.

Operations nest: an Operation opened while another one is active on the
same session joins the outer transaction instead of committing.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modeler.errors import ModelerError
from modeler.log import get_logger

logger = get_logger(__name__)

_ACTIVE_KEY = "modeler.operation"


@dataclass(frozen=True)
class OperationPolicy:
    name: str
    atomic: bool = True
    tolerated: Tuple[str, ...] = ()

    def tolerates(self, step: str) -> bool:
        return step in self.tolerated


@dataclass
class StepFailure:
    step: str
    error: str

    def to_dict(self) -> dict:
        return {"step": self.step, "error": self.error}


@dataclass
class Operation:
    session: Session
    policy: OperationPolicy
    skipped: List[StepFailure] = field(default_factory=list)
    _compensations: List[Tuple[str, Callable[[], None]]] = field(default_factory=list)
    _outer: "Operation" = None

    @property
    def nested(self) -> bool:
        return self._outer is not None

    def __enter__(self) -> "Operation":
        self._outer = self.session.info.get(_ACTIVE_KEY)
        if self._outer is None:
            self.session.info[_ACTIVE_KEY] = self
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.nested:
            # The enclosing operation owns commit and rollback
            return False

        self.session.info.pop(_ACTIVE_KEY, None)

        if exc_type is None:
            self.session.commit()
            return False

        logger.warning(f"[{self.policy.name}] failed: {exc}")
        self.session.rollback()
        if not self.policy.atomic:
            self._run_compensations()
        return False

    def step(self, name: str, fn: Callable, *args, **kwargs):
        """Run one step under the policy; returns the step result or None when tolerated."""
        if self.policy.tolerates(name):
            try:
                with self.session.begin_nested():
                    return fn(*args, **kwargs)
            except (ModelerError, SQLAlchemyError) as exc:
                message = getattr(exc, "message", None) or str(exc)
                logger.warning(f"[{self.policy.name}] step '{name}' skipped: {message}")
                self.skipped.append(StepFailure(name, message))
                return None

        result = fn(*args, **kwargs)
        if not self.policy.atomic and not self.nested:
            self.session.commit()
        return result

    def compensate(self, name: str, fn: Callable[[], None]) -> None:
        """Register an undo action, only used by non-atomic policies."""
        self._compensations.append((name, fn))

    def _run_compensations(self) -> None:
        for name, fn in reversed(self._compensations):
            try:
                fn()
                self.session.commit()
                logger.info(f"[{self.policy.name}] compensated '{name}'")
            except (ModelerError, SQLAlchemyError) as exc:
                self.session.rollback()
                logger.error(f"[{self.policy.name}] compensation '{name}' failed: {exc}")
