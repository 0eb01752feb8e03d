from datetime import datetime
from pathlib import Path

from tickbridge.channels import ResponseSink
from tickbridge.clock import ManualClock
from tickbridge.commands import BatchEntry, CommandEnvelope, CommandResult


def _stamp(clock: ManualClock) -> str:
    return datetime.fromtimestamp(clock.now()).strftime("%Y-%m-%d %H:%M:%S")


def test_result_has_request_and_time_header(tmp_path: Path) -> None:
    clock = ManualClock()
    sink = ResponseSink(tmp_path / "out" / "response.md", clock=clock)

    sink.write_result(CommandEnvelope(type="set", path="A"), CommandResult.success("done\n"))

    assert sink.read() == f'<!-- Request: set path="A" -->\n<!-- Time: {_stamp(clock)} -->\n\ndone\n'


def test_result_accepts_plain_strings(tmp_path: Path) -> None:
    sink = ResponseSink(tmp_path / "response.md", clock=ManualClock())

    sink.write_result("screenshot", "# Screenshot\n")

    assert "<!-- Request: screenshot -->" in sink.read()
    assert sink.read().endswith("# Screenshot\n")


def test_later_writes_replace_earlier_ones(tmp_path: Path) -> None:
    sink = ResponseSink(tmp_path / "response.md", clock=ManualClock())

    sink.write_result("a", "first")
    sink.write_result("b", "second")

    assert "first" not in sink.read()
    assert sink.read().endswith("second")
    assert [path.name for path in tmp_path.iterdir()] == ["response.md"]


def test_error_format(tmp_path: Path) -> None:
    clock = ManualClock()
    sink = ResponseSink(tmp_path / "response.md", clock=clock)

    sink.write_error("Error processing request: bad")

    assert sink.read() == (
        f"<!-- Request: error -->\n<!-- Time: {_stamp(clock)} -->\n\n"
        "# Error\n\nError processing request: bad\n\nUse `help` command for available options.\n"
    )


def test_batch_format(tmp_path: Path) -> None:
    clock = ManualClock()
    sink = ResponseSink(tmp_path / "response.md", clock=clock)

    sink.write_batch(
        [
            BatchEntry(type="help", ok=True, message="# Bridge Commands\n\nmore"),
            BatchEntry(type="set", ok=False, message="Error: GameObject not found: `X`"),
        ]
    )

    assert sink.read() == (
        f"<!-- Request: batch (2) -->\n<!-- Time: {_stamp(clock)} -->\n\n"
        "# Batch: 1/2 succeeded\n"
        "\n"
        "1. [+] help: # Bridge Commands\n"
        "2. [x] set: Error: GameObject not found: `X`\n"
        "\n"
        f"<!-- Time: {_stamp(clock)} -->\n"
    )


def test_read_missing_file(tmp_path: Path) -> None:
    assert ResponseSink(tmp_path / "nothing.md").read() == ""
