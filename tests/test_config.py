import pytest

from otel_sample_app.config import Config, ConfigurationError


def test_defaults():
    cfg = Config.from_env({})
    assert cfg.port == 8080
    assert cfg.time_interval == 1
    assert cfg.cpu_usage_upper_bound == 100
    assert cfg.total_heap_size_upper_bound == 100
    assert cfg.threads_active_upper_bound == 10
    assert cfg.sample_app_ports == []
    assert cfg.instance_id is None


def test_values_are_read_from_env():
    cfg = Config.from_env(
        {
            "SAMPLE_APP_PORT": "9000",
            "TIME_INTERVAL": "0.5",
            "RANDOM_TIME_ALIVE_INCREMENTER": "3",
            "RANDOM_CPU_USAGE_UPPER_BOUND": "50",
            "SAMPLE_APP_PORTS": "8081, 8082,,",
            "INSTANCE_ID": "ci-42",
            "LOG_LEVEL": "debug",
        }
    )
    assert cfg.port == 9000
    assert cfg.time_interval == 0.5
    assert cfg.time_alive_increment == 3
    assert cfg.cpu_usage_upper_bound == 50
    assert cfg.sample_app_ports == ["8081", "8082"]
    assert cfg.instance_id == "ci-42"
    assert cfg.log_level == "DEBUG"


def test_empty_values_fall_back_to_defaults():
    cfg = Config.from_env({"SAMPLE_APP_PORT": "", "INSTANCE_ID": ""})
    assert cfg.port == 8080
    assert cfg.instance_id is None


@pytest.mark.parametrize(
    "name,value",
    [
        ("RANDOM_CPU_USAGE_UPPER_BOUND", "0"),
        ("RANDOM_TOTAL_HEAP_SIZE_UPPER_BOUND", "-5"),
        ("RANDOM_THREADS_ACTIVE_UPPER_BOUND", "-1"),
        ("TIME_INTERVAL", "0"),
        ("SAMPLE_APP_PORT", "not-a-port"),
    ],
)
def test_invalid_values_fail_fast(name, value):
    with pytest.raises(ConfigurationError) as exc:
        Config.from_env({name: value})
    assert name in str(exc.value)


def test_threads_upper_bound_may_be_zero():
    assert Config.from_env({"RANDOM_THREADS_ACTIVE_UPPER_BOUND": "0"}).threads_active_upper_bound == 0


def test_reads_dotenv_file(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("RANDOM_TOTAL_HEAP_SIZE_UPPER_BOUND=256\n")
    monkeypatch.chdir(tmp_path)
    # register the var with monkeypatch so whatever dotenv sets is undone
    monkeypatch.setenv("RANDOM_TOTAL_HEAP_SIZE_UPPER_BOUND", "1")
    monkeypatch.delenv("RANDOM_TOTAL_HEAP_SIZE_UPPER_BOUND")
    cfg = Config.from_env()
    assert cfg.total_heap_size_upper_bound == 256


@pytest.mark.parametrize("instance_id", ["ci run", "id#1", "näme"])
def test_instance_id_must_be_a_valid_name_fragment(instance_id):
    with pytest.raises(ConfigurationError) as exc:
        Config.from_env({"INSTANCE_ID": instance_id})
    assert "INSTANCE_ID" in str(exc.value)


def test_instance_id_accepts_name_characters():
    assert Config.from_env({"INSTANCE_ID": "ci-42_a.b/c"}).instance_id == "ci-42_a.b/c"
