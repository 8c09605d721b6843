"""Tests for IncrementalTextCommitter."""

from __future__ import annotations

import threading

from models import CommitState, EditKind, TranscriptRevision
from text_committer import IncrementalTextCommitter, plan_edits


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class FakeField:
    """Text field that records every edit and keeps the resulting text."""

    def __init__(self, initial: str = "") -> None:
        self.text = initial
        self.calls: list[tuple[str, object]] = []

    def insert(self, text: str) -> None:
        self.calls.append(("insert", text))
        self.text += text

    def delete_trailing(self, count: int) -> None:
        self.calls.append(("delete", count))
        self.text = self.text[:-count] if count else self.text


class FakeHistory:
    def __init__(self) -> None:
        self.texts: list[str] = []

    def add(self, text: str):  # noqa: ANN201
        self.texts.append(text)
        return None


def _run(revisions: list[tuple[str, bool]], initial: str = "") -> tuple[FakeField, FakeHistory, IncrementalTextCommitter]:
    field = FakeField(initial)
    history = FakeHistory()
    committer = IncrementalTextCommitter(injector=field, history=history)
    for text, is_final in revisions:
        committer.submit(TranscriptRevision(text=text, is_final=is_final))
    assert committer.flush(timeout=2.0)
    committer.close()
    return field, history, committer


# ---------------------------------------------------------------
# plan_edits
# ---------------------------------------------------------------

def test_prefix_extension_inserts_only_suffix() -> None:
    ops, state = plan_edits(
        CommitState(last_committed_text="hello", committed_char_count=5),
        TranscriptRevision(text="hello world"),
    )
    assert [(op.kind, op.text) for op in ops] == [(EditKind.INSERT.value, " world")]
    assert state == CommitState(last_committed_text="hello world", committed_char_count=11)


def test_identical_revision_is_noop() -> None:
    start = CommitState(last_committed_text="abc", committed_char_count=3)
    ops, state = plan_edits(start, TranscriptRevision(text="abc"))
    assert ops == []
    assert state == start


def test_divergent_revision_replaces_everything() -> None:
    ops, state = plan_edits(
        CommitState(last_committed_text="their", committed_char_count=5),
        TranscriptRevision(text="there is"),
    )
    assert [(op.kind, op.count, op.text) for op in ops] == [
        (EditKind.DELETE.value, 5, ""),
        (EditKind.INSERT.value, 0, "there is"),
    ]
    assert state.committed_char_count == 8


def test_shorter_divergent_revision_replaces_everything() -> None:
    ops, _ = plan_edits(
        CommitState(last_committed_text="abcdef", committed_char_count=6),
        TranscriptRevision(text="xy"),
    )
    assert [(op.kind, op.count, op.text) for op in ops] == [
        (EditKind.DELETE.value, 6, ""),
        (EditKind.INSERT.value, 0, "xy"),
    ]


def test_final_resets_state() -> None:
    ops, state = plan_edits(
        CommitState(last_committed_text="ab", committed_char_count=2),
        TranscriptRevision(text="abc", is_final=True),
    )
    assert [(op.kind, op.count, op.text) for op in ops] == [
        (EditKind.DELETE.value, 2, ""),
        (EditKind.INSERT.value, 0, "abc"),
    ]
    assert state == CommitState()


def test_empty_final_still_deletes_partial() -> None:
    ops, state = plan_edits(
        CommitState(last_committed_text="um", committed_char_count=2),
        TranscriptRevision(text="", is_final=True),
    )
    assert [(op.kind, op.count) for op in ops] == [(EditKind.DELETE.value, 2)]
    assert state == CommitState()


# ---------------------------------------------------------------
# Scenarios through the commit queue
# ---------------------------------------------------------------

def test_chinese_utterance_scenario() -> None:
    field, history, _ = _run([("他", False), ("他说", False), ("他说你好", True)])

    assert field.calls == [
        ("insert", "他"),
        ("insert", "说"),
        ("delete", 2),
        ("insert", "他说你好"),
    ]
    assert field.text == "他说你好"
    assert history.texts == ["他说你好"]


def test_backward_revision_scenario() -> None:
    field, _, committer = _run([("hello wor", False), ("hello", False)])

    assert field.calls == [("insert", "hello wor"), ("delete", 4)]
    assert field.text == "hello"
    assert committer.state == CommitState(last_committed_text="hello", committed_char_count=5)


def test_monotonic_chain_never_deletes() -> None:
    chain = ["I", "I think", "I think so", "I think so too"]
    field, _, _ = _run([(t, False) for t in chain])

    assert all(kind == "insert" for kind, _ in field.calls)
    assert field.calls == [("insert", "I"), ("insert", " think"), ("insert", " so"), ("insert", " too")]
    assert field.text == "I think so too"


def test_final_text_wins_over_any_partials() -> None:
    field, _, _ = _run(
        [("rec", False), ("wreck a", False), ("wreck a nice", False), ("recognize speech", True)],
        initial="Notes: ",
    )
    assert field.text == "Notes: recognize speech"


def test_utterances_accumulate_after_each_final() -> None:
    field, history, _ = _run(
        [("one", False), ("One.", True), ("two", False), ("Two.", True)],
    )
    assert field.text == "One.Two."
    assert history.texts == ["One.", "Two."]


def test_empty_final_is_not_saved_to_history() -> None:
    field, history, _ = _run([("uh", False), ("", True)])
    assert field.text == ""
    assert history.texts == []


def test_injection_failure_is_logged_not_raised() -> None:
    class BrokenField:
        def insert(self, text: str) -> None:
            raise OSError("no focus")

        def delete_trailing(self, count: int) -> None:
            raise OSError("no focus")

    committer = IncrementalTextCommitter(injector=BrokenField())
    committer.submit(TranscriptRevision(text="abc"))
    committer.submit(TranscriptRevision(text="abd"))
    assert committer.flush(timeout=2.0)
    assert committer.state.last_committed_text == "abd"
    committer.close()


def test_drain_runs_after_pending_edits() -> None:
    field = FakeField()
    committer = IncrementalTextCommitter(injector=field)
    drained = threading.Event()
    seen: list[str] = []

    committer.submit(TranscriptRevision(text="a"))
    committer.submit(TranscriptRevision(text="ab", is_final=True))
    committer.drain(lambda: (seen.append(field.text), drained.set()))

    assert drained.wait(timeout=2.0)
    assert seen == ["ab"]
    committer.close()


def test_reset_drops_baseline() -> None:
    field = FakeField()
    committer = IncrementalTextCommitter(injector=field)
    committer.submit(TranscriptRevision(text="stale"))
    committer.reset()
    committer.submit(TranscriptRevision(text="fresh"))
    assert committer.flush(timeout=2.0)

    assert field.calls == [("insert", "stale"), ("insert", "fresh")]
    committer.close()
