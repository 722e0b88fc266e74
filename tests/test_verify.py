"""
Unit Tests for the Verification Driver, Configuration and CLI

Run:
    pytest tests/test_verify.py -v
"""

import sys
import os
import json

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import numpy as np
import pytest
from rich.console import Console

from realfft import LaunchConfigError, PreconditionError
from realfft.cli import main
from realfft.config import VerifyConfig, config_from_dict, load_config
from realfft.verify import display_report, random_signals, run_verification, scenario_signals


class TestVerification:
    """Test suite for the verification driver."""

    def test_scenario_signal(self):
        x = scenario_signals(14, 3)
        assert x.shape == (42,)
        assert x.dtype == np.float32
        assert list(x[:8]) == [5, 9, 13, 17, 21, 25, 29, 40]

    def test_random_signal_seeded(self):
        a = random_signals(16, 2, seed=7)
        b = random_signals(16, 2, seed=7)
        assert np.array_equal(a, b)

    def test_random_signal_keeps_global_state(self):
        np.random.seed(0)
        expected = np.random.rand()
        np.random.seed(0)
        random_signals(16, 2, seed=11)
        assert np.random.rand() == expected

    def test_scenario_in_place(self):
        """N=14, batch=3: all three paths agree on all 24 values and their sum."""
        report = run_verification(VerifyConfig())
        sums = {name: r.total for name, r in report.results.items()}

        print(f"\n[Scenario]")
        for name, total in sums.items():
            print(f"  {name}: {total}")

        assert report.passed
        assert report.edge_bins_real
        for result in report.results.values():
            assert result.spectrum.shape == (3 * 8,)
            assert abs(result.total - sums['reference']) < 1e-5 * np.abs(report.results['reference'].spectrum).sum()

    def test_scenario_out_of_place(self):
        report = run_verification(VerifyConfig(in_place=False))
        assert report.passed

    def test_random_double_basic_kernel(self):
        config = VerifyConfig(n=256, batch=4, precision='double', signal='random',
                              seed=3, kernel='basic', block_size=16, rtol=1e-10)
        report = run_verification(config)
        assert report.passed
        assert report.launch.grid == (5, 1, 4)

    def test_torch_backend(self):
        report = run_verification(VerifyConfig(backend='torch', n=64, batch=2))
        assert report.passed

    def test_launch_error(self):
        with pytest.raises(LaunchConfigError):
            run_verification(VerifyConfig(batch=65536))

    def test_display_report(self):
        report = run_verification(VerifyConfig())
        console = Console(record=True, width=200)
        display_report(report, console)
        text = console.export_text()
        assert "real input" in text
        assert "sum:" in text
        assert "Real-to-complex verification" in text


class TestConfig:
    """Test suite for configuration loading."""

    def test_defaults(self):
        config = VerifyConfig().validate()
        assert (config.n, config.batch, config.precision) == (14, 3, 'single')

    def test_load_yaml(self, tmp_path):
        path = tmp_path / 'verify.yaml'
        path.write_text("n: 32\nbatch: 5\nprecision: double\nin_place: false\n")
        config = load_config(str(path))
        assert config.n == 32
        assert config.batch == 5
        assert config.precision == 'double'
        assert config.in_place is False

    def test_default_file(self):
        path = os.path.join(os.path.dirname(__file__), '..', 'configs', 'default.yaml')
        assert load_config(path) == VerifyConfig()

    def test_unknown_key(self):
        with pytest.raises(PreconditionError):
            config_from_dict({'n': 14, 'radix': 4})

    def test_invalid_values(self):
        for bad in [{'n': 15}, {'n': 2}, {'batch': 0}, {'precision': 'half'},
                    {'backend': 'opencl'}, {'kernel': 'radix4'}, {'signal': 'chirp'}]:
            with pytest.raises(PreconditionError):
                config_from_dict(bad)

    def test_non_numeric_fields(self, tmp_path):
        """YAML 1.1 reads 1e-5 (no dot) as a string."""
        path = tmp_path / 'verify.yaml'
        path.write_text("rtol: 1e-5\n")
        with pytest.raises(PreconditionError):
            load_config(str(path))

        for bad in [{'print_limit': 'abc'}, {'block_size': '512'}, {'num_threads': 2.5},
                    {'seed': 'x'}, {'in_place': 'yes'}, {'precision': ['single']}]:
            with pytest.raises(PreconditionError):
                config_from_dict(bad)

    def test_integer_rtol(self):
        config = config_from_dict({'rtol': 1})
        assert isinstance(config.rtol, float)
        assert config.rtol == 1.0

    def test_override(self):
        config = VerifyConfig().override(n=64, batch=None, in_place=False)
        assert config.n == 64
        assert config.batch == 3
        assert config.in_place is False


class TestCLI:
    """Test suite for the realfft-verify entry point."""

    def test_default_run(self):
        assert main([]) == 0

    def test_out_of_place_double(self):
        assert main(['--n', '64', '--batch', '2', '--precision', 'double', '--out-of-place',
                     '--signal', 'random', '--seed', '1']) == 0

    def test_config_and_json(self, tmp_path):
        config_path = tmp_path / 'verify.yaml'
        config_path.write_text("n: 16\nbatch: 2\nkernel: basic\n")
        json_path = tmp_path / 'out' / 'summary.json'
        log_path = tmp_path / 'logs' / 'verify.log'

        assert main(['--config', str(config_path), '--json', str(json_path),
                     '--log-file', str(log_path), '-v']) == 0

        summary = json.loads(json_path.read_text())
        assert summary['passed'] is True
        assert summary['config']['n'] == 16
        assert summary['launch']['grid'] == [1, 1, 2]
        assert set(summary['paths']) == {'reference', 'sequential', 'parallel'}
        assert log_path.exists()

    def test_non_numeric_config_value(self, tmp_path):
        config_path = tmp_path / 'verify.yaml'
        config_path.write_text("rtol: 1e-5\n")
        assert main(['--config', str(config_path)]) == 2

    def test_verbose_logs_to_console(self, capsys):
        assert main(['-v']) == 0
        assert 'Generating twiddle table' in capsys.readouterr().err

    def test_invalid_configuration(self):
        assert main(['--n', '15']) == 2

    def test_launch_error(self):
        assert main(['--batch', '70000']) == 2
