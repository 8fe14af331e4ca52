"""Tests for the undo/redo history."""
from async_studio.prompt.history import HistorySnapshot, HistoryStack
from async_studio.prompt.values import StructuredPrompt


def snap(text: str, **structured) -> HistorySnapshot:
    return HistorySnapshot(prompt_text=text, structured=StructuredPrompt(structured))


class TestHistoryStack:
    def test_identical_state_is_coalesced(self):
        history = HistoryStack()
        assert history.push(snap("a")) is True
        assert history.push(snap("a")) is False
        assert len(history) == 1

    def test_undo_then_redo(self):
        history = HistoryStack()
        history.push(snap("a"))
        history.push(snap("b"))
        assert history.undo().prompt_text == "a"
        assert history.redo().prompt_text == "b"
        assert history.current.prompt_text == "b"

    def test_undo_walks_back_to_first_push(self):
        history = HistoryStack()
        for text in ("a", "b", "c", "d"):
            history.push(snap(text))
        for _ in range(3):
            last = history.undo()
        assert last.prompt_text == "a"
        assert history.can_undo is False

    def test_nothing_to_undo_or_redo(self):
        history = HistoryStack()
        assert history.undo() is None
        history.push(snap("a"))
        assert history.undo() is None
        assert history.redo() is None

    def test_new_state_discards_redo(self):
        history = HistoryStack()
        history.push(snap("a"))
        history.push(snap("b"))
        history.undo()
        history.push(snap("c"))
        assert history.can_redo is False

    def test_repushing_current_state_keeps_redo(self):
        history = HistoryStack()
        history.push(snap("a"))
        history.push(snap("b"))
        history.undo()
        history.push(snap("a"))
        assert history.redo().prompt_text == "b"

    def test_structured_and_image_count_as_state(self):
        history = HistoryStack()
        history.push(snap("a", subject="cat"))
        assert history.push(snap("a", subject="dog")) is True
        assert history.push(HistorySnapshot("a", StructuredPrompt({"subject": "dog"}), "data:x")) is True

    def test_depth_is_bounded(self):
        history = HistoryStack(limit=100)
        for i in range(105):
            history.push(snap(f"p{i}"))
        assert len(history) == 100
        for _ in range(99):
            history.undo()
        assert history.can_undo is False
        assert history.current.prompt_text == "p5"
