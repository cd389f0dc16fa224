"""Unit tests for slipbox.edits.NoteEditor."""

import textwrap
from datetime import datetime, timezone
from pathlib import Path

import pytest

from slipbox.confirm import always_no, always_yes
from slipbox.db import IndexStore
from slipbox.edits import NoteEditor
from slipbox.errors import DuplicateTitle, FileSystemError, InvalidTitle, NotFound, OutsideRoot
from slipbox.fs import LocalFilesystem
from slipbox.index import rebuild
from slipbox.note import Note


def _write_note(directory: Path, name: str, content: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.md"
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


class _Recorder:
    """Confirmation callback that remembers its prompts."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.prompts: list[str] = []

    def __call__(self, message: str) -> bool:
        self.prompts.append(message)
        return self.answer


class _FailingWrites(LocalFilesystem):
    """Local filesystem that cannot write one particular file."""

    def __init__(self, broken: Path) -> None:
        self.broken = broken

    def write(self, path: Path, text: str) -> None:
        if Path(path) == self.broken:
            raise FileSystemError(path, "read-only file system")
        super().write(path, text)


@pytest.fixture()
def editor(root: Path, store: IndexStore) -> NoteEditor:
    return NoteEditor(store, root, confirm=always_yes)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_creates_empty_note(self, editor: NoteEditor, root: Path):
        result = editor.create("First Note")
        assert result.created
        assert (root / "First Note.md").read_text(encoding="utf-8") == ""
        assert editor.store.get("First Note") == Note("First Note")

    def test_creates_project_directory(self, editor: NoteEditor, root: Path):
        editor.create("A", "work")
        assert (root / "work" / "A.md").is_file()
        assert editor.store.get("A").project == "work"

    def test_main_alias(self, editor: NoteEditor, root: Path):
        editor.create("A", "main")
        assert (root / "A.md").is_file()

    def test_template(self, editor: NoteEditor, root: Path, tmp_path: Path):
        template = tmp_path / "template.md"
        template.write_text("# ${TITLE}\n${DATE}\n\n[[Index]] #inbox\n", encoding="utf-8")
        today = datetime(2024, 5, 6, tzinfo=timezone.utc)
        result = editor.create("Idea", template=template, today=today)
        assert (root / "Idea.md").read_text(encoding="utf-8") == "# Idea\n2024-05-06\n\n[[Index]] #inbox\n"
        assert result.note.links == ["Index"]
        assert editor.store.get("Idea").tags == ["inbox"]

    def test_title_whitespace_is_normalised(self, editor: NoteEditor, root: Path):
        editor.create("  Two \n Words ")
        assert (root / "Two Words.md").is_file()

    def test_duplicate_in_other_project(self, editor: NoteEditor, root: Path):
        editor.create("A", "work")
        with pytest.raises(DuplicateTitle):
            editor.create("A")
        assert not (root / "A.md").exists()

    def test_invalid_title(self, editor: NoteEditor):
        with pytest.raises(InvalidTitle):
            editor.create(".secret")

    def test_existing_file_is_only_indexed(self, editor: NoteEditor, root: Path):
        _write_note(root, "Old", "kept as is [[Elsewhere]]")
        result = editor.create("Old")
        assert not result.created
        assert (root / "Old.md").read_text(encoding="utf-8") == "kept as is [[Elsewhere]]"
        assert editor.store.get("Old").links == ["Elsewhere"]


# ---------------------------------------------------------------------------
# rename
# ---------------------------------------------------------------------------


@pytest.fixture()
def linked(root: Path, store: IndexStore) -> Path:
    """'Old Note' with two backlinks, one of them wrapped over two lines."""
    _write_note(root, "Old Note", "the note being renamed #x")
    _write_note(root, "C", "As said in [[Old\n\tNote]], see also [[Other]].\n")
    _write_note(root / "work", "D", "Ref: [[Old Note]]\n")
    _write_note(root, "Other", "[[Old Notes]] is something else\n")
    rebuild(root, store)
    return root


class TestRename:
    def test_rename_repairs_backlinks(self, linked: Path, store: IndexStore):
        confirm = _Recorder()
        editor = NoteEditor(store, linked, confirm=confirm)
        result = editor.rename("Old Note", "New Note")

        assert confirm.prompts == ["Old Note --> New Note"]
        assert result.repaired == ["C", "D"]
        assert result.failed == {}
        assert not (linked / "Old Note.md").exists()
        assert (linked / "New Note.md").read_text(encoding="utf-8") == "the note being renamed #x"
        assert (linked / "C.md").read_text(encoding="utf-8") == (
            "As said in [[New Note]], see also [[Other]].\n"
        )
        assert (linked / "work" / "D.md").read_text(encoding="utf-8") == "Ref: [[New Note]]\n"
        assert (linked / "Other.md").read_text(encoding="utf-8") == "[[Old Notes]] is something else\n"

        assert store.get("New Note") == Note("New Note", "", [], ["x"])
        assert store.get("Old Note") is None
        assert store.get("C").links == ["New Note", "Other"]
        assert store.get("D").links == ["New Note"]
        assert store.notes_linked_but_missing() == ["Old Notes"]

    def test_rename_keeps_project(self, root: Path, store: IndexStore):
        _write_note(root / "work", "A", "")
        rebuild(root, store)
        NoteEditor(store, root, confirm=always_yes).rename("A", "B")
        assert (root / "work" / "B.md").is_file()
        assert store.get("B").project == "work"

    def test_declined(self, linked: Path, store: IndexStore):
        editor = NoteEditor(store, linked, confirm=always_no)
        assert editor.rename("Old Note", "New Note") is None
        assert (linked / "Old Note.md").exists()
        assert store.exists("Old Note")
        assert "[[Old\n\tNote]]" in (linked / "C.md").read_text(encoding="utf-8")

    def test_unknown_note(self, linked: Path, store: IndexStore):
        with pytest.raises(NotFound):
            NoteEditor(store, linked, confirm=always_yes).rename("Nope", "X")

    def test_refuses_to_overwrite(self, linked: Path, store: IndexStore):
        confirm = _Recorder()
        with pytest.raises(DuplicateTitle):
            NoteEditor(store, linked, confirm=confirm).rename("Old Note", "D")
        assert confirm.prompts == []
        assert (linked / "Old Note.md").exists()

    def test_invalid_new_title(self, linked: Path, store: IndexStore):
        with pytest.raises(InvalidTitle):
            NoteEditor(store, linked, confirm=always_yes).rename("Old Note", "a/b")

    def test_partial_repair(self, linked: Path, store: IndexStore, caplog):
        fs = _FailingWrites(linked / "C.md")
        editor = NoteEditor(store, linked, fs, confirm=always_yes)
        with caplog.at_level("WARNING", logger="slipbox.edits"):
            result = editor.rename("Old Note", "New Note")

        assert result.repaired == ["D"]
        assert list(result.failed) == ["C"]
        assert "read-only" in result.failed["C"]
        assert "'C' still links to 'Old Note'" in caplog.text
        # C keeps its old link, which is now a ghost
        assert store.get("C").links == ["Old Note", "Other"]
        assert "Old Note" in store.notes_linked_but_missing()
        assert store.get("D").links == ["New Note"]


# ---------------------------------------------------------------------------
# move
# ---------------------------------------------------------------------------


@pytest.fixture()
def drafts(root: Path, store: IndexStore) -> Path:
    _write_note(root, "Draft 1", "[[Final]]")
    _write_note(root, "Draft 2", "")
    _write_note(root, "Final", "")
    rebuild(root, store)
    return root


class TestMove:
    def test_move_matching_notes(self, drafts: Path, store: IndexStore):
        confirm = _Recorder()
        moved = NoteEditor(store, drafts, confirm=confirm).move("^Draft", "archive")

        assert [n.title for n in moved] == ["Draft 1", "Draft 2"]
        assert (drafts / "archive" / "Draft 1.md").read_text(encoding="utf-8") == "[[Final]]"
        assert not (drafts / "Draft 1.md").exists()
        assert [n.title for n in store.find_by_project("archive")] == ["Draft 1", "Draft 2"]
        assert store.get("Draft 1").links == ["Final"]
        assert store.get("Final").project == ""
        assert "'archive' project" in confirm.prompts[0]
        assert "[] Draft 1" in confirm.prompts[0]

    def test_move_back_to_main(self, drafts: Path, store: IndexStore):
        editor = NoteEditor(store, drafts, confirm=always_yes)
        editor.move("Draft", "archive")
        moved = editor.move("Draft", "main")
        assert len(moved) == 2
        assert (drafts / "Draft 2.md").exists()
        assert store.get("Draft 2").project == ""

    def test_notes_already_there_are_skipped(self, drafts: Path, store: IndexStore):
        editor = NoteEditor(store, drafts, confirm=always_yes)
        editor.move("Draft 1", "archive")
        moved = editor.move("Draft", "archive")
        assert [n.title for n in moved] == ["Draft 2"]

    def test_no_match(self, drafts: Path, store: IndexStore):
        with pytest.raises(NotFound):
            NoteEditor(store, drafts, confirm=always_yes).move("^Nothing", "archive")

    def test_declined(self, drafts: Path, store: IndexStore):
        assert NoteEditor(store, drafts, confirm=always_no).move("Draft", "archive") is None
        assert not (drafts / "archive").exists()
        assert store.get("Draft 1").project == ""


# ---------------------------------------------------------------------------
# update / delete
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_reindexes_edited_file(self, drafts: Path, store: IndexStore, editor: NoteEditor):
        path = _write_note(drafts, "Draft 2", "now links [[Final]] #done")
        note = editor.update(path)
        assert note == Note("Draft 2", "", ["Final"], ["done"])
        assert store.get("Draft 2") == note

    def test_new_file(self, root: Path, editor: NoteEditor):
        path = _write_note(root / "work", "Fresh", "[[X]]")
        editor.update(path)
        assert editor.store.get("Fresh") == Note("Fresh", "work", ["X"], [])

    def test_missing_file(self, root: Path, editor: NoteEditor):
        with pytest.raises(NotFound):
            editor.update(root / "missing.md")

    def test_outside_root(self, tmp_path: Path, editor: NoteEditor):
        path = _write_note(tmp_path / "elsewhere", "A", "")
        with pytest.raises(OutsideRoot):
            editor.update(path)

    def test_title_taken_by_other_project(self, root: Path, editor: NoteEditor):
        _write_note(root, "A", "")
        editor.update(root / "A.md")
        clash = _write_note(root / "work", "A", "")
        with pytest.raises(DuplicateTitle):
            editor.update(clash)
        assert editor.store.get("A").project == ""

    def test_note_moved_by_hand(self, root: Path, editor: NoteEditor):
        old = _write_note(root, "A", "")
        editor.update(old)
        old.unlink()
        new = _write_note(root / "work", "A", "")
        editor.update(new)
        assert editor.store.get("A").project == "work"

    def test_whitespace_in_file_name(self, root: Path, editor: NoteEditor):
        spaced = _write_note(root / "work", "Two  Words", "[[A]]")
        note = editor.update(spaced)
        assert note == Note("Two Words", "work", ["A"], [])
        assert (root / "work" / "Two Words.md").is_file()
        assert not spaced.exists()
        assert editor.store.get("Two Words") == note

    def test_collapsed_name_already_taken(self, root: Path, editor: NoteEditor):
        editor.update(_write_note(root, "Two Words", ""))
        spaced = _write_note(root, "Two  Words", "[[X]]")
        with pytest.raises(FileSystemError):
            editor.update(spaced)
        assert spaced.exists()
        assert editor.store.get("Two Words").links == []


class TestDelete:
    def test_delete(self, drafts: Path, store: IndexStore):
        confirm = _Recorder()
        deleted = NoteEditor(store, drafts, confirm=confirm).delete("Final")
        assert deleted.title == "Final"
        assert not (drafts / "Final.md").exists()
        assert not store.exists("Final")
        assert store.notes_linked_but_missing() == ["Final"]
        assert confirm.prompts == ["delete [main] Final?"]

    def test_declined(self, drafts: Path, store: IndexStore):
        assert NoteEditor(store, drafts, confirm=always_no).delete("Final") is None
        assert (drafts / "Final.md").exists()

    def test_file_already_gone(self, drafts: Path, store: IndexStore):
        (drafts / "Final.md").unlink()
        NoteEditor(store, drafts, confirm=always_yes).delete("Final")
        assert not store.exists("Final")

    def test_unknown(self, drafts: Path, store: IndexStore):
        with pytest.raises(NotFound):
            NoteEditor(store, drafts, confirm=always_yes).delete("Nope")
