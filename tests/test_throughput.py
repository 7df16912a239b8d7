import pytest

from harness.throughput import ThroughputReport, gflops, sgemm_flops


def test_flop_count():
    assert sgemm_flops(64) == 2.0 * 64**3
    assert sgemm_flops(5120) == 268435456000.0


def test_gflops_uses_average_time():
    assert gflops(5120, 100.0, 1) == pytest.approx(2684.35456)
    assert gflops(5120, 1000.0, 10) == pytest.approx(2684.35456)
    assert gflops(64, 0.0, 1) == float("inf")


def test_report_line_format():
    assert ThroughputReport("Max128", 5120, 100.0, 1).format() == "Max128 GFLOPS: 2684.35 (size: 5120, iterations: 1)"
    assert ThroughputReport("Max64 ", 5120, 200.0, 2).format() == "Max64  GFLOPS: 2684.35 (size: 5120, iterations: 2)"


def test_report_json():
    d = ThroughputReport("Max64 ", 128, 4.0, 2).to_json_dict()
    assert d["label"] == "Max64"
    assert d["avg_ms"] == 2.0
    assert d["repeat"] == 2


def test_gflops_exact_value():
    assert gflops(256, 1.0, 1) == 2.0 * 256**3 / (1.0 * 1e6)
