import shutil
import tempfile
import threading
import time
from pathlib import Path

import pytest

from distlab import mrcli
from distlab.mrapps import indexer, wc


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_load_app_by_plain_name():
    assert mrcli.load_app("wc") == (wc.map_, wc.reduce_)


def test_load_app_by_plugin_path():
    assert mrcli.load_app("../mrapps/indexer.so") == (indexer.map_, indexer.reduce_)


def test_load_app_unknown():
    with pytest.raises(ValueError, match="cannot load plugin"):
        mrcli.load_app("nosuchapp.so")


def test_sequential_word_count(workdir):
    (workdir / "a.txt").write_text("the cat the")
    (workdir / "b.txt").write_text("dog")
    assert mrcli.sequential_main(["wc.so", "a.txt", "b.txt"]) == 0
    assert (workdir / "mr-out-0").read_text() == "cat 1\ndog 1\nthe 2\n"


def test_sequential_output_keys_sorted(workdir):
    (workdir / "a.txt").write_text("zeta alpha mid alpha")
    assert mrcli.sequential_main(["wc", "a.txt"]) == 0
    keys = [line.split(" ")[0] for line in (workdir / "mr-out-0").read_text().splitlines()]
    assert keys == sorted(set(keys))


def test_sequential_usage(workdir, capsys):
    assert mrcli.sequential_main(["wc.so"]) == 1
    assert "Usage: mrsequential" in capsys.readouterr().err


def test_sequential_missing_file(workdir, capsys):
    assert mrcli.sequential_main(["wc.so", "missing.txt"]) == 1
    assert "cannot open missing.txt" in capsys.readouterr().err


def test_sequential_unknown_app(workdir, capsys):
    (workdir / "a.txt").write_text("x")
    assert mrcli.sequential_main(["bogus.so", "a.txt"]) == 1
    assert "cannot load plugin" in capsys.readouterr().err


def test_master_usage(capsys):
    assert mrcli.master_main([]) == 1
    assert "Usage: mrmaster" in capsys.readouterr().err


def test_worker_usage(capsys):
    assert mrcli.worker_main([]) == 1
    assert "Usage: mrworker" in capsys.readouterr().err


def test_distributed_matches_sequential(workdir, monkeypatch):
    inputs = {
        "pg-1.txt": "It was the best of times, it was the worst of times.",
        "pg-2.txt": "Call me Ishmael. Some years ago, never mind how long.",
        "pg-3.txt": "the the the end",
    }
    for name, text in inputs.items():
        (workdir / name).write_text(text)
    names = sorted(inputs)

    assert mrcli.sequential_main(["wc.so", *names]) == 0
    expected = sorted((workdir / "mr-out-0").read_text().splitlines())
    (workdir / "mr-out-0").unlink()

    sockdir = tempfile.mkdtemp(prefix="mr", dir="/tmp")
    try:
        sockname = str(Path(sockdir) / "s")
        monkeypatch.setenv("DISTLAB_MR_SOCKET", sockname)
        status = []
        master = threading.Thread(target=lambda: status.append(mrcli.master_main(names)))
        master.start()
        deadline = time.monotonic() + 10
        while not Path(sockname).exists() and time.monotonic() < deadline:
            time.sleep(0.05)
        assert mrcli.worker_main(["wc.so"]) == 0
        master.join(timeout=30)
    finally:
        shutil.rmtree(sockdir, ignore_errors=True)

    assert status == [0]
    outputs = sorted(workdir.glob("mr-out-*"))
    assert len(outputs) == mrcli.N_REDUCE
    actual = sorted(line for path in outputs for line in path.read_text().splitlines())
    assert actual == expected