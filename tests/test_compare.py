import numpy as np

from verify.compare import compare_outputs, render_grid
from verify.tolerances import Tolerances


def _truth(n: int = 8) -> np.ndarray:
    return np.arange(n * n, dtype=np.float32)


def test_identical_outputs_write_nothing(tmp_path):
    t = _truth()
    path = tmp_path / "data.txt"
    res = compare_outputs(t.copy(), t, 8, artifact_path=path)
    assert res.identical and res.ok
    assert res.errors == 0
    assert res.summary_lines() == ["0 errors"]
    assert not path.exists()


def test_mismatches_are_counted_and_marked(tmp_path):
    t = _truth()
    c = t.copy()
    c[[1, 10, 63]] += 100.0
    path = tmp_path / "data.txt"
    res = compare_outputs(c, t, 8, artifact_path=path)
    assert res.errors == 3
    assert res.artifact_path == path
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 8
    assert sum(line.count("!") for line in lines) == 3
    assert sum(line.count("=") for line in lines) == 61
    # Row y holds C[x*N + y] for x = 0..N-1.
    assert lines[0] == "".join(f"{x * 8}=" for x in range(8))
    assert lines[2].startswith("2=110!18=")
    assert lines[1].startswith("101!9=")
    assert lines[7].endswith("55=163!")
    assert res.summary_lines() == ["3 errors"]


def test_large_sizes_count_without_artifact(tmp_path):
    t = _truth()
    c = t.copy()
    c[5] = -1.0
    path = tmp_path / "data.txt"
    res = compare_outputs(c, t, 8, artifact_path=path, report_limit=4)
    assert res.errors == 1
    assert res.artifact_path is None
    assert not path.exists()


def test_unopenable_artifact_is_reported_not_raised(tmp_path):
    t = _truth()
    c = t.copy()
    c[0] = 42.0
    path = tmp_path / "no_such_dir" / "data.txt"
    res = compare_outputs(c, t, 8, artifact_path=path)
    assert res.errors == 1
    assert res.artifact_error == f"Cannot open {path} for writing"
    assert res.summary_lines() == [f"Cannot open {path} for writing", "1 errors"]


def test_nan_and_signed_zero():
    t = _truth()
    t[3] = np.nan
    c = t.copy()
    c[4] = 0.5
    # Same NaN bits, but a different cell forces the element-wise pass: NaN != NaN.
    assert compare_outputs(c, t, 8, artifact_path=None).errors == 2

    t = np.zeros(64, dtype=np.float32)
    c = t.copy()
    c[0] = -0.0
    res = compare_outputs(c, t, 8, artifact_path=None)
    assert not res.identical
    assert res.errors == 0


def test_tolerances_relax_the_count():
    t = _truth()
    c = t + np.float32(1e-4)
    assert compare_outputs(c, t, 8, artifact_path=None).errors > 0
    res = compare_outputs(c, t, 8, artifact_path=None, tolerances=Tolerances(1e-3, 0.0))
    assert res.errors == 0


def test_render_grid_values_round_to_integers():
    c = np.array([0.4, 1.6, 2.5, 3.0], dtype=np.float32)
    mask = np.array([False, True, False, False])
    assert list(render_grid(c, mask, 2)) == ["0=2=", "2!3="]


def test_default_report_limit_is_768(tmp_path):
    n = 769
    t = np.zeros(n * n, dtype=np.float32)
    c = t.copy()
    c[[0, 1000]] = 1.0
    path = tmp_path / "data.txt"
    res = compare_outputs(c, t, n, artifact_path=path)
    assert res.errors == 2
    assert not path.exists()
