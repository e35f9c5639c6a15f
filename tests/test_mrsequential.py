import pytest

from labkit.mrapps import indexer_map, indexer_reduce, wc_map, wc_reduce
from labkit.mrsequential import OUTPUT, main, run_sequential


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_word_count(tmp_path):
    a = _write(tmp_path / "a.txt", "b a")
    b = _write(tmp_path / "b.txt", "a c!")
    out = tmp_path / "out"
    run_sequential(wc_map, wc_reduce, [a, b], str(out))
    assert out.read_text() == "a 2\nb 1\nc 1\n"


def test_output_keys_sorted_and_distinct(tmp_path):
    a = _write(tmp_path / "a.txt", "zeta alpha Mu alpha beta zeta zeta")
    out = tmp_path / "out"
    run_sequential(wc_map, wc_reduce, [a], str(out))
    keys = [line.split(" ")[0] for line in out.read_text().splitlines()]
    assert keys == sorted(set(keys))
    assert set(keys) == {"zeta", "alpha", "Mu", "beta"}


def test_indexer_lists_documents(tmp_path):
    a = _write(tmp_path / "a.txt", "apple pear")
    b = _write(tmp_path / "b.txt", "apple")
    out = tmp_path / "out"
    run_sequential(indexer_map, indexer_reduce, [a, b], str(out))
    lines = dict(line.split(" ", 1) for line in out.read_text().splitlines())
    assert lines["apple"] == indexer_reduce("apple", [a, b])
    assert lines["pear"] == indexer_reduce("pear", [a])


def test_empty_input_creates_empty_output(tmp_path):
    a = _write(tmp_path / "a.txt", "")
    out = tmp_path / "out"
    run_sequential(wc_map, wc_reduce, [a], str(out))
    assert out.read_text() == ""


def test_missing_input_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        run_sequential(wc_map, wc_reduce, [str(tmp_path / "nope")], str(tmp_path / "o"))


def test_main_usage(capsys):
    assert main(["wc.so"]) == 1
    assert "Usage: mrsequential" in capsys.readouterr().err


def test_main_unknown_app(tmp_path, capsys):
    a = _write(tmp_path / "a.txt", "x")
    assert main(["nosuch.so", a]) == 1
    assert "cannot load plugin" in capsys.readouterr().err


def test_main_missing_file(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["wc.so", "missing.txt"]) == 1
    assert "cannot open missing.txt" in capsys.readouterr().err


def test_main_writes_default_output(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / "in.txt", "one two one")
    assert main(["wc.so", "in.txt"]) == 0
    expected = tmp_path / "expected"
    run_sequential(wc_map, wc_reduce, ["in.txt"], str(expected))
    assert (tmp_path / OUTPUT).read_text() == expected.read_text()