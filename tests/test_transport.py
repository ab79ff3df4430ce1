import io
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

from pkgforge.config import BuildConfig
from pkgforge.errors import DownloadFailed, NoTransportAvailable
from pkgforge.transport import Aria2cClient, CurlClient, HttpTransport, WgetClient


class _WritingRunner:
    """Pretends to be a downloader: writes the body to the path after ``-o``/``-O``."""

    def __init__(self, available: tuple[str, ...], status: int = 0) -> None:
        self.available = available
        self.status = status
        self.commands: list[list[str]] = []

    def which(self, name: str) -> str | None:
        return name if name in self.available else None

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        stdin_path: Path | None = None,
    ) -> int:
        command = list(argv)
        self.commands.append(command)
        for flag in ("-o", "-O"):
            if flag in command and self.status == 0:
                Path(command[command.index(flag) + 1]).write_bytes(b"body")
        return self.status


def test_client_priority_prefers_aria2c_then_curl(tmp_path: Path) -> None:
    config = BuildConfig(prefix=tmp_path)

    both = HttpTransport(config=config, runner=_WritingRunner(("curl", "wget")))
    assert isinstance(both.client, CurlClient)

    all_three = HttpTransport(config=config, runner=_WritingRunner(("aria2c", "curl", "wget")))
    assert isinstance(all_three.client, Aria2cClient)


def test_forced_client_and_no_client(tmp_path: Path) -> None:
    forced = HttpTransport(
        config=BuildConfig(prefix=tmp_path, http_client="wget"),
        runner=_WritingRunner(("curl", "wget")),
    )
    assert isinstance(forced.client, WgetClient)

    missing = HttpTransport(config=BuildConfig(prefix=tmp_path), runner=_WritingRunner(()))
    with pytest.raises(NoTransportAvailable):
        missing.get("https://example.org/foo.tar.gz", tmp_path / "foo.tar.gz")


def test_client_choice_is_cached_per_transport(tmp_path: Path) -> None:
    runner = _WritingRunner(("curl",))
    transport = HttpTransport(config=BuildConfig(prefix=tmp_path), runner=runner)

    first = transport.client
    runner.available = ("wget",)

    assert transport.client is first


def test_get_writes_destination_atomically(tmp_path: Path) -> None:
    runner = _WritingRunner(("curl",))
    transport = HttpTransport(config=BuildConfig(prefix=tmp_path), runner=runner)
    dest = tmp_path / "downloads" / "foo.tar.gz"

    transport.get("https://example.org/foo.tar.gz", dest)

    assert dest.read_bytes() == b"body"
    assert sorted(path.name for path in dest.parent.iterdir()) == ["foo.tar.gz"]
    written_to = runner.commands[0][runner.commands[0].index("-o") + 1]
    assert Path(written_to).name.startswith(".foo.tar.gz.part-")


def test_failed_get_removes_partial_file(tmp_path: Path) -> None:
    transport = HttpTransport(
        config=BuildConfig(prefix=tmp_path),
        runner=_WritingRunner(("curl",), status=22),
    )
    dest = tmp_path / "foo.tar.gz"

    with pytest.raises(DownloadFailed) as excinfo:
        transport.get("https://example.org/foo.tar.gz", dest)

    assert excinfo.value.context["returncode"] == "22"
    assert list(tmp_path.iterdir()) == []


def test_get_without_destination_streams_body(tmp_path: Path) -> None:
    stream = io.BytesIO()
    transport = HttpTransport(
        config=BuildConfig(prefix=tmp_path),
        runner=_WritingRunner(("wget",)),
        stdout=stream,
    )

    transport.get("https://example.org/foo.tar.gz")

    assert stream.getvalue() == b"body"


def test_head_failure_raises_download_failed(tmp_path: Path) -> None:
    runner = _WritingRunner(("curl",), status=6)
    transport = HttpTransport(config=BuildConfig(prefix=tmp_path), runner=runner)

    with pytest.raises(DownloadFailed):
        transport.head("https://mirror.example/abc")

    assert runner.commands[0][:3] == ["curl", "-q", "-fsSIL"]


def test_options_and_ip_flags_are_appended(tmp_path: Path) -> None:
    config = BuildConfig(
        prefix=tmp_path,
        ip_version="4",
        downloader_opts={"curl": ("--retry", "2")},
    )
    runner = _WritingRunner(("curl",))
    transport = HttpTransport(config=config, runner=runner)

    transport.get("https://example.org/foo.tar.gz", tmp_path / "foo.tar.gz")

    command = runner.commands[0]
    assert "-4" in command
    assert command[-3:] == ["--retry", "2", "https://example.org/foo.tar.gz"]
    assert Aria2cClient(ip_version="4").head_argv("u")[-2] == "--disable-ipv6=true"
