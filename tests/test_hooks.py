from gitcraft.hooks import (
    COUNTER_FILE,
    SequenceSpec,
    main,
    message_file,
    serve_message,
    transform_todo,
)

A, B, C = "a" * 40, "b" * 40, "c" * 40

TODO = f"""\
pick {A[:7]} A
pick {B[:7]} B
pick {C[:7]} C

# Rebase 1111111..{C[:7]} onto 1111111 (3 commands)
"""


def test_only_the_planned_commit_changes_keyword():
    spec = SequenceSpec(order=[A, B, C], actions={B: "reword"})

    result = transform_todo(TODO, spec)

    assert result.splitlines()[:3] == [
        f"pick {A[:7]} A",
        f"reword {B[:7]} B",
        f"pick {C[:7]} C",
    ]


def test_lines_follow_the_planned_order():
    spec = SequenceSpec(order=[A, C, B], actions={C: "squash"})

    lines = transform_todo(TODO, spec).splitlines()

    assert lines[:3] == [f"pick {A[:7]} A", f"squash {C[:7]} C", f"pick {B[:7]} B"]
    assert lines[3:] == ["", f"# Rebase 1111111..{C[:7]} onto 1111111 (3 commands)"]


def test_transform_is_idempotent():
    spec = SequenceSpec(order=[C, A, B], actions={A: "drop", B: "fixup"})

    once = transform_todo(TODO, spec)

    assert transform_todo(once, spec) == once


def test_abbreviated_keywords_and_unknown_lines():
    todo = f"p {A[:9]} A\nexec make test\np {B[:7]} B\n"
    spec = SequenceSpec(order=[B, A], actions={A: "edit"})

    assert transform_todo(todo, spec) == (
        f"p {B[:7]} B\nedit {A[:9]} A\nexec make test\n"
    )


def test_lines_not_starting_with_pick_keep_their_keyword():
    todo = f"drop {A[:7]} A\n"
    spec = SequenceSpec(order=[A], actions={A: "reword"})
    assert transform_todo(todo, spec) == todo


def test_messages_are_served_in_order(tmp_path):
    (tmp_path / COUNTER_FILE).write_text("0")
    message_file(tmp_path, 0).write_text("fix: b\n")
    message_file(tmp_path, 1).write_text("feat: c\n")
    first = tmp_path / "COMMIT_EDITMSG"
    second = tmp_path / "COMMIT_EDITMSG2"

    assert serve_message(tmp_path, first)
    assert serve_message(tmp_path, second)

    assert first.read_text() == "fix: b\n"
    assert second.read_text() == "feat: c\n"
    assert (tmp_path / COUNTER_FILE).read_text() == "2"


def test_counter_past_the_last_message_leaves_destination_alone(tmp_path):
    (tmp_path / COUNTER_FILE).write_text("0")
    message_file(tmp_path, 0).write_text("only\n")
    destination = tmp_path / "COMMIT_EDITMSG"
    serve_message(tmp_path, destination)
    destination.write_text("git's own message\n")

    assert not serve_message(tmp_path, destination)
    assert destination.read_text() == "git's own message\n"


def test_main_runs_both_hooks(tmp_path):
    spec_path = tmp_path / "sequence.json"
    spec_path.write_text(SequenceSpec(order=[A, B, C], actions={B: "drop"}).model_dump_json())
    todo = tmp_path / "git-rebase-todo"
    todo.write_text(TODO)
    (tmp_path / COUNTER_FILE).write_text("0")
    message_file(tmp_path, 0).write_text("new\n")
    message = tmp_path / "COMMIT_EDITMSG"
    message.write_text("old\n")

    assert main(["sequence", str(spec_path), str(todo)]) == 0
    assert main(["message", str(tmp_path), str(message)]) == 0

    assert f"drop {B[:7]} B" in todo.read_text()
    assert message.read_text() == "new\n"


def test_main_rejects_bad_usage():
    assert main(["bogus"]) == 2
    assert main(["sequence", "only-one"]) == 2
