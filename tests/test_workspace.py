import numpy as np
import pytest

from backends.host.runtime import HostDevice
from harness.errors import DeviceError
from harness.workspace import Workspace, seed_inputs


def _device(cls=HostDevice) -> HostDevice:
    dev = cls()
    dev.open(dev.enumerate()[0])
    return dev


def test_seeded_inputs_are_reproducible_and_in_unit_range():
    a1, b1 = seed_inputs(16, np.random.default_rng(3))
    a2, b2 = seed_inputs(16, np.random.default_rng(3))
    assert np.array_equal(a1, a2) and np.array_equal(b1, b2)
    assert a1.dtype == np.float32 and a1.size == 256
    assert float(a1.min()) >= 0.0 and float(a1.max()) < 1.0
    assert not np.array_equal(a1, b1)


def test_allocate_stages_four_buffers():
    dev = _device()
    ws = Workspace.allocate(dev, 8, seed=1)
    assert dev.live_buffers == 4
    assert ws.size_bytes == 8 * 8 * 4
    assert not ws.host_a.flags.writeable
    c, t = ws.fetch_outputs()
    assert not c.any() and not t.any()
    assert np.array_equal(dev.download(ws.dev_a), ws.host_a)


def test_release_frees_each_buffer_once():
    dev = _device()
    ws = Workspace.allocate(dev, 4, seed=0)
    assert ws.release() == ["A", "B", "C", "T"]
    assert dev.freed == 4
    assert dev.live_buffers == 0
    assert ws.release() == []
    assert dev.freed == 4
    with pytest.raises(DeviceError):
        ws.fetch_outputs()


def test_non_square_inputs_rejected():
    with pytest.raises(ValueError):
        Workspace.from_host(_device(), np.zeros(10, np.float32), np.zeros(10, np.float32))


class _FailingZeros(HostDevice):
    def zeros(self, count, dtype=np.float32):
        if self.live_buffers >= 3:
            raise MemoryError("out of device memory")
        return super().zeros(count, dtype)


def test_staging_failure_releases_what_was_allocated():
    dev = _device(_FailingZeros)
    with pytest.raises(DeviceError) as ei:
        Workspace.allocate(dev, 4, seed=0)
    assert ei.value.operation == "alloc+zero T"
    assert dev.live_buffers == 0
    assert dev.freed == 3


def test_reset_candidate_replaces_c_with_zeros():
    dev = _device()
    ws = Workspace.allocate(dev, 4, seed=0)
    old = ws.dev_c
    old[:] = 1.0
    ws.reset_candidate()
    assert ws.dev_c is not old
    assert not ws.fetch_candidate().any()
    assert dev.live_buffers == 4
    assert dev.freed == 1
    assert ws.release() == ["A", "B", "C", "T"]
    with pytest.raises(DeviceError):
        ws.reset_candidate()
