from harness.config import HarnessConfig, atoi, clamp_arg, env_defaults


def test_atoi_matches_c_semantics():
    assert atoi("12") == 12
    assert atoi("12abc") == 12
    assert atoi("  -3") == -3
    assert atoi("+7") == 7
    assert atoi("abc") == 0
    assert atoi("") == 0
    assert atoi(None) == 0


def test_defaults_without_arguments():
    cfg = HarnessConfig.from_args()
    assert cfg.thread64 == 80
    assert cfg.n == 5120
    assert cfg.repeat == 1
    assert cfg.trace_fields == 0
    assert cfg.report_limit == 768
    assert isinstance(cfg.seed, int)


def test_out_of_range_values_fall_back_to_defaults():
    cfg = HarnessConfig.from_args("0", "1001", "101")
    assert (cfg.thread64, cfg.repeat, cfg.trace_fields) == (80, 1, 0)
    cfg = HarnessConfig.from_args("81", "0", "0")
    assert (cfg.thread64, cfg.repeat, cfg.trace_fields) == (80, 1, 0)
    cfg = HarnessConfig.from_args("junk", "-5", "x")
    assert (cfg.thread64, cfg.repeat, cfg.trace_fields) == (80, 1, 0)


def test_in_range_values_are_kept():
    cfg = HarnessConfig.from_args("2", "5", "8")
    assert (cfg.thread64, cfg.repeat, cfg.trace_fields) == (2, 5, 8)
    assert cfg.n == 128
    assert HarnessConfig.from_args("3x").thread64 == 3
    assert clamp_arg("1000", (1, 1000), 1) == 1000


def test_options_pass_through_and_none_is_ignored():
    cfg = HarnessConfig.from_args("1", device="host", artifact=None, seed=9)
    assert cfg.device == "host"
    assert cfg.artifact is None
    assert cfg.seed == 9


def test_env_defaults():
    env = {
        "SGEMM_BENCH_DEVICE": "host",
        "SGEMM_BENCH_ARTIFACT": "my_kernels",
        "SGEMM_BENCH_DATA_PATH": "out.txt",
        "SGEMM_BENCH_SEED": "42",
    }
    assert env_defaults(env) == {"device": "host", "artifact": "my_kernels", "data_path": "out.txt", "seed": 42}
    assert env_defaults({"SGEMM_BENCH_SEED": "soon"}) == {}
    assert env_defaults({}) == {}
