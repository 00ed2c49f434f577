"""Tests for the benchmark runner and its report."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

import run_bench
from run_bench import (
    BenchConfig,
    InputFilesInfo,
    ToolVersions,
    collect_input_info,
    compiled_version,
    converter_commands,
    hyperfine_argv,
    render_report,
)
from tool_runner import ToolInvocationError


HYPERFINE_OUTPUT = """Benchmark 1: cargo run --release -- ./bench/bench-pages -o ./bench/bench-out/htmd
  Time (mean ± σ):     301.2 ms ±   4.1 ms    [User: 1.1 s, System: 0.2 s]
"""


def test_collect_input_info_counts_html_only(tmp_path):
    (tmp_path / "Rust.html").write_bytes(b"x" * 1000)
    (tmp_path / "Cargo.html").write_bytes(b"y" * 24)
    (tmp_path / "pages_overview.json").write_text("{}")
    (tmp_path / "sub.html").mkdir()

    info = collect_input_info(tmp_path)
    assert info == InputFilesInfo(file_count=2, total_size=1024)
    assert info.total_mb == pytest.approx(1024 / 1024 / 1024)


def test_converter_commands_order_and_paths():
    cfg = BenchConfig(compiled_cmd="htmd ./bench/bench-pages -o ./bench/bench-out/htmd")
    commands = converter_commands(cfg)
    assert len(commands) == 3
    assert commands[0] == "htmd ./bench/bench-pages -o ./bench/bench-out/htmd"
    assert "markdownify_batch.py bench/bench-pages --output bench/bench-out/markdownify" in commands[1]
    assert "pandoc_batch.py bench/bench-pages --output bench/bench-out/pandoc" in commands[2]


def test_hyperfine_argv():
    cfg = BenchConfig(warmup=2, runs=7)
    assert hyperfine_argv(cfg, ["a", "b c"]) == [
        "hyperfine", "--warmup", "2", "--runs", "7", "a", "b c"
    ]


def test_compiled_version_from_cargo_toml(tmp_path):
    cargo = tmp_path / "Cargo.toml"
    cargo.write_text('[package]\nname = "htmd-cli"\nversion = "0.3.1"\n')
    assert compiled_version(cargo) == "0.3.1"
    assert compiled_version(tmp_path / "missing.toml") == "unknown"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("hyperfine 1.18.0\n", "1.18.0"),
        ("pandoc 3.1.3\nFeatures: +server\n", "3.1.3"),
        ("", ""),
    ],
)
def test_version_word(text, expected):
    assert run_bench._version_word(text) == expected


def test_os_facts_are_populated():
    assert " x " in run_bench.os_cpus()
    assert run_bench.os_memory_gb().endswith(" GB")
    assert run_bench.os_summary()


def test_render_report_sections():
    cfg = BenchConfig(page_count=20)
    commands = ["htmd pages", "python markdownify_batch.py pages", "python pandoc_batch.py pages"]
    report = render_report(
        cfg=cfg,
        commands=commands,
        result=HYPERFINE_OUTPUT,
        inputs=InputFilesInfo(file_count=20, total_size=3 * 1024 * 1024),
        versions=ToolVersions(
            python="3.12.1", hyperfine="1.18.0", pandoc="3.1.3",
            markdownify="0.13.1", compiled="0.3.1",
        ),
        environment={"system": "Linux x86_64 #1 SMP", "cpus": "Ryzen x 16", "memory": "31.2 GB"},
        generated_at=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
    )

    for heading in ("# Benchmark", "# Environment", "# Versions", "# Inputs", "# Results"):
        assert heading in report
    assert "Fetch 20 page links from" in report
    assert "hyperfine --warmup 3 --runs 5 \\" in report
    assert "  'python pandoc_batch.py pages'" in report
    assert "CPUs: Ryzen x 16" in report
    assert "Memory: 31.2 GB" in report
    assert "htmd-cli: 0.3.1" in report
    assert "Pandoc: 3.1.3" in report
    assert "File count: 20" in report
    assert "Total size: 3.00 MB" in report
    assert HYPERFINE_OUTPUT in report
    assert "*Updated at Mon, 19 Oct 2026 12:00:00 GMT*" in report


def test_parse_args_json_config(tmp_path):
    config_file = tmp_path / "bench.json"
    config_file.write_text(json.dumps({"root": str(tmp_path), "page_count": 50, "build_cmd": None}))
    cfg = run_bench.parse_args(["--config", str(config_file)])
    assert cfg.page_count == 50
    assert cfg.build_cmd is None
    assert cfg.path("bench/README.md") == (tmp_path / "bench" / "README.md").resolve()


def test_parse_args_rejects_unknown_keys(tmp_path):
    config_file = tmp_path / "bench.json"
    config_file.write_text(json.dumps({"pages": 5}))
    with pytest.raises(SystemExit):
        run_bench.parse_args(["--config", str(config_file)])


def test_parse_args_no_build():
    assert run_bench.parse_args(["--no_build"]).build_cmd is None


def test_missing_timing_tool_exits_with_error(monkeypatch, capsys):
    def missing(tool, version_flag="--version"):
        raise ToolInvocationError(tool, "is not installed")

    monkeypatch.setattr(run_bench, "check_command", missing)
    with pytest.raises(SystemExit) as exc_info:
        run_bench.main(["--no_build"])
    assert exc_info.value.code == 1
    assert "[Error] hyperfine: is not installed" in capsys.readouterr().out


def test_run_bench_end_to_end_with_fakes(tmp_path, monkeypatch):
    pages = tmp_path / "bench" / "bench-pages"
    pages.mkdir(parents=True)
    (pages / "Rust.html").write_bytes(b"<html></html>")

    seen = {}

    def fake_run_tool(argv, **kwargs):
        if argv[0] == "hyperfine" and "--version" in argv:
            return "hyperfine 1.18.0\n"
        if argv[0] == "hyperfine":
            seen["argv"] = argv
            return HYPERFINE_OUTPUT
        if argv[0] == "pandoc":
            return "pandoc 3.1.3\n"
        raise AssertionError(argv)

    monkeypatch.setattr(run_bench, "check_command", lambda tool: "")
    monkeypatch.setattr(run_bench, "run_tool", fake_run_tool)

    cfg = BenchConfig(root=str(tmp_path), build_cmd=None, compiled_cmd="true")
    report_path = run_bench.run_bench(cfg)

    text = (tmp_path / "bench" / "README.md").read_text(encoding="utf-8")
    assert report_path == str((tmp_path / "bench" / "README.md").resolve())
    assert seen["argv"][:5] == ["hyperfine", "--warmup", "3", "--runs", "5"]
    assert "File count: 1" in text
    assert HYPERFINE_OUTPUT in text


def test_default_compiled_command_follows_configured_dirs():
    assert BenchConfig().compiled_command() == (
        "cargo run --release -- bench/bench-pages -o bench/bench-out/htmd"
    )
    cfg = BenchConfig(pages_dir="corpus/html", out_dir="corpus/md")
    commands = converter_commands(cfg)
    assert commands[0] == "cargo run --release -- corpus/html -o corpus/md/htmd"
    assert "corpus/html --output corpus/md/markdownify" in commands[1]
    assert "corpus/html --output corpus/md/pandoc" in commands[2]


def test_explicit_compiled_command_wins():
    cfg = BenchConfig(pages_dir="corpus/html", compiled_cmd="htmd in -o out")
    assert cfg.compiled_command() == "htmd in -o out"
    assert run_bench.parse_args(["--compiled_cmd", "htmd in -o out"]).compiled_command() == "htmd in -o out"
