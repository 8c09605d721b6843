"""Incremental commit of revised transcripts into the focused text field.

The recognizer keeps revising the sentence it is working on.  Instead of
waiting for the final text, every revision is turned into the smallest
insert/delete against what this session has already typed, and the edits
run on one FIFO queue so they hit the target in exactly the order the
revisions arrived.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from interfaces import HistorySink, TextInjector
from models import CommitState, EditKind, EditOp, TranscriptRevision
from serial_queue import SerialQueue

logger = logging.getLogger(__name__)


def plan_edits(state: CommitState, revision: TranscriptRevision) -> tuple[list[EditOp], CommitState]:
    """Return the edits that turn the committed text into ``revision`` and the state afterwards."""
    text = revision.text
    last = state.last_committed_text
    ops: list[EditOp] = []

    if revision.is_final:
        if state.committed_char_count > 0:
            ops.append(EditOp(kind=EditKind.DELETE.value, count=state.committed_char_count))
        if text:
            ops.append(EditOp(kind=EditKind.INSERT.value, text=text))
        return ops, CommitState()

    if text == last:
        return ops, state

    if len(text) < len(last) and last.startswith(text):
        ops.append(EditOp(kind=EditKind.DELETE.value, count=len(last) - len(text)))
    elif text.startswith(last):
        ops.append(EditOp(kind=EditKind.INSERT.value, text=text[len(last):]))
    else:
        if state.committed_char_count > 0:
            ops.append(EditOp(kind=EditKind.DELETE.value, count=state.committed_char_count))
        ops.append(EditOp(kind=EditKind.INSERT.value, text=text))
    return ops, CommitState(last_committed_text=text, committed_char_count=len(text))


class IncrementalTextCommitter:
    def __init__(
        self,
        injector: TextInjector,
        history: Optional[HistorySink] = None,
        queue: Optional[SerialQueue] = None,
    ) -> None:
        self._injector = injector
        self._history = history
        self._queue = queue or SerialQueue("text-commit")
        self._state = CommitState()

    @property
    def state(self) -> CommitState:
        return CommitState(
            last_committed_text=self._state.last_committed_text,
            committed_char_count=self._state.committed_char_count,
        )

    def submit(self, revision: TranscriptRevision) -> None:
        self._queue.submit(self._apply, revision)

    def reset(self) -> None:
        self._queue.submit(self._reset)

    def drain(self, on_drained: Callable[[], None]) -> None:
        """Run ``on_drained`` on the commit queue once every earlier edit has completed."""
        self._queue.submit(on_drained)

    def flush(self, timeout: Optional[float] = None) -> bool:
        return self._queue.flush(timeout)

    def close(self) -> None:
        self._queue.close()

    def _reset(self) -> None:
        if self._state.committed_char_count:
            logger.debug("dropping commit baseline of %d chars", self._state.committed_char_count)
        self._state = CommitState()

    def _apply(self, revision: TranscriptRevision) -> None:
        ops, self._state = plan_edits(self._state, revision)
        for op in ops:
            self._execute(op)
        if revision.is_final:
            logger.debug("utterance committed: %r", revision.text)
            if revision.text and self._history is not None:
                try:
                    self._history.add(revision.text)
                except Exception:
                    logger.exception("saving history failed")

    def _execute(self, op: EditOp) -> None:
        try:
            if op.kind == EditKind.DELETE.value:
                logger.debug("delete %d", op.count)
                self._injector.delete_trailing(op.count)
            else:
                logger.debug("insert %r", op.text)
                self._injector.insert(op.text)
        except Exception:
            logger.exception("text injection failed (%s)", op.kind)
