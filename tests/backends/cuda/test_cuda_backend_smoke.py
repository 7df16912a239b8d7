from __future__ import annotations

import numpy as np
import pytest

try:
    import torch
except Exception:
    torch = None


def _cuda_available() -> bool:
    if torch is None:
        return False
    try:
        return bool(torch.cuda.is_available())
    except Exception:
        return False


@pytest.mark.skipif(not _cuda_available(), reason="CUDA not available")
def test_cuda_reference_sgemm_matches_numpy():
    from backends.cuda.runtime import CudaDevice
    from harness.oracle import ReferenceOracle
    from harness.workspace import Workspace

    dev = CudaDevice()
    infos = dev.enumerate()
    assert infos
    dev.open(infos[0])
    try:
        ws = Workspace.allocate(dev, 64, seed=0)
        blas = dev.open_blas()
        ReferenceOracle(blas).compute(ws)
        _c, t = ws.fetch_outputs()
        ar = ws.host_a.reshape(64, 64).astype(np.float64)
        br = ws.host_b.reshape(64, 64).astype(np.float64)
        assert np.allclose(t.reshape(64, 64), br.T @ ar, rtol=1e-4, atol=1e-4)
        assert ws.release() == ["A", "B", "C", "T"]
        blas.close()
    finally:
        dev.close()


@pytest.mark.skipif(not _cuda_available(), reason="CUDA not available")
def test_cuda_event_timer_measures_a_window():
    from backends.cuda.runtime import CudaDevice

    dev = CudaDevice()
    dev.open(dev.enumerate()[0])
    try:
        timer = dev.create_timer()
        buf = dev.zeros(1 << 16)
        timer.start()
        buf.add_(1.0)
        timer.stop()
        assert timer.elapsed_ms() >= 0.0
        assert float(dev.download(buf)[0]) == 1.0
        dev.free(buf)
    finally:
        dev.close()
