from __future__ import annotations

import numpy as np
import pytest

from backends.host.runtime import HostDevice, HostTimer, load_kernel_module
from harness.geometry import SGEMM_64, SGEMM_128, compute_geometry
from pipeline.interfaces import LaunchBuffers


def _open(dev: HostDevice | None = None) -> HostDevice:
    dev = dev or HostDevice()
    dev.open(dev.enumerate()[0])
    return dev


def _colmajor(m: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(m.T).reshape(-1)


def test_enumerate_reports_configured_capabilities():
    dev = HostDevice(capabilities=[(3, 5), (5, 2)])
    infos = dev.enumerate()
    assert [(i.ordinal, i.major, i.minor) for i in infos] == [(0, 3, 5), (1, 5, 2)]
    assert infos[1].describe() == "Using: Id:1 Host simulation (numpy) (5.2)"


def test_operations_need_an_open_context():
    dev = HostDevice()
    with pytest.raises(RuntimeError):
        dev.zeros(4)
    _open(dev)
    buf = dev.zeros(4)
    dev.close()
    with pytest.raises(RuntimeError):
        dev.download(buf)


def test_double_free_is_an_invalid_pointer():
    dev = _open()
    buf = dev.upload(np.ones(4, np.float32))
    dev.free(buf)
    with pytest.raises(ValueError):
        dev.free(buf)
    with pytest.raises(ValueError):
        dev.download(np.ones(4, np.float32))


def test_timer_requires_both_markers():
    t = HostTimer()
    with pytest.raises(RuntimeError):
        t.elapsed_ms()
    t.start()
    t.stop()
    assert t.elapsed_ms() >= 0.0


@pytest.mark.parametrize("transa,transb", [("N", "N"), ("N", "T"), ("T", "N"), ("T", "T")])
def test_blas_matches_numpy(transa, transb):
    rng = np.random.default_rng(0)
    m, n, k = 5, 3, 4
    op_a = rng.random((m, k), dtype=np.float32)
    op_b = rng.random((k, n), dtype=np.float32)
    a_mat = op_a if transa == "N" else op_a.T
    b_mat = op_b if transb == "N" else op_b.T
    dev = _open()
    a = dev.upload(_colmajor(a_mat))
    b = dev.upload(_colmajor(b_mat))
    c = dev.zeros(m * n)
    blas = dev.open_blas()
    blas.sgemm(transa, transb, m, n, k, 2.0, a, a_mat.shape[0], b, b_mat.shape[0], 0.0, c, m)
    got = dev.download(c).reshape(n, m).T
    assert np.allclose(got, 2.0 * (op_a.astype(np.float64) @ op_b.astype(np.float64)), rtol=1e-5)


def test_blas_beta():
    dev = _open()
    a = dev.upload(np.eye(2, dtype=np.float32).reshape(-1))
    b = dev.upload(np.eye(2, dtype=np.float32).reshape(-1))
    c = dev.upload(np.full(4, np.nan, np.float32))
    blas = dev.open_blas()
    blas.sgemm("N", "T", 2, 2, 2, 1.0, a, 2, b, 2, 0.0, c, 2)
    assert dev.download(c).tolist() == [1.0, 0.0, 0.0, 1.0]
    blas.sgemm("N", "T", 2, 2, 2, 1.0, a, 2, b, 2, 1.0, c, 2)
    assert dev.download(c).tolist() == [2.0, 0.0, 0.0, 2.0]
    blas.close()
    with pytest.raises(RuntimeError):
        blas.sgemm("N", "T", 2, 2, 2, 1.0, a, 2, b, 2, 0.0, c, 2)


@pytest.mark.parametrize("variant,n", [(SGEMM_128, 200), (SGEMM_64, 96), (SGEMM_128, 128)])
def test_simulated_kernels_are_bit_exact_with_the_reference(variant, n):
    dev = _open()
    rng = np.random.default_rng(n)
    a = dev.upload(rng.random(n * n, dtype=np.float32))
    b = dev.upload(rng.random(n * n, dtype=np.float32))
    c = dev.zeros(n * n)
    t = dev.zeros(n * n)
    dev.open_blas().sgemm("N", "T", n, n, n, 1.0, a, n, b, n, 0.0, t, n)
    mod = dev.load_kernels(dev.default_artifact, textures={"texA": a, "texB": b}, nbytes=n * n * 4, timer=dev.create_timer())
    mod.launch(variant, LaunchBuffers(c=c, n=n), compute_geometry(variant, n))
    mod.close()
    assert dev.download(c).tobytes() == dev.download(t).tobytes()


def test_textures_are_read_only_views():
    dev = _open()
    a = dev.upload(np.ones(16, np.float32))
    b = dev.upload(np.ones(16, np.float32))
    mod = dev.load_kernels(dev.default_artifact, textures={"texA": a, "texB": b}, nbytes=64, timer=dev.create_timer())
    assert not mod.textures["texA"].flags.writeable
    with pytest.raises(ValueError):
        mod.textures["texB"][0] = 2.0
    assert mod.trace_layout.startswith("tid,")


def test_unbound_texture_and_missing_entry_point():
    dev = _open()
    a = dev.upload(np.ones(16, np.float32))
    with pytest.raises(KeyError):
        dev.load_kernels(dev.default_artifact, textures={"texA": a}, nbytes=64, timer=dev.create_timer())
    b = dev.upload(np.ones(16, np.float32))
    mod = dev.load_kernels(dev.default_artifact, textures={"texA": a, "texB": b}, nbytes=64, timer=dev.create_timer())
    with pytest.raises(AttributeError):
        mod.entry("sgemm_kernel_32")


def test_kernel_module_from_file(tmp_path):
    path = tmp_path / "tiny_kernels.py"
    path.write_text("TEXTURES = ()\ndef sgemm_kernel_64(block, params):\n    params[0][:] = 3.0\n", encoding="utf-8")
    mod = load_kernel_module(str(path))
    assert mod.TEXTURES == ()
    dev = _open()
    c = dev.zeros(64 * 64)
    kernels = dev.load_kernels(str(path), textures={}, nbytes=0, timer=dev.create_timer())
    kernels.launch(SGEMM_64, LaunchBuffers(c=c, n=64), compute_geometry(SGEMM_64, 64), count=2)
    assert float(dev.download(c)[0]) == 3.0
    with pytest.raises(FileNotFoundError):
        load_kernel_module(str(tmp_path / "absent.py"))
