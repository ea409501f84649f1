"""Tests for shared helpers and logging setup."""

import logging
import subprocess
import time
from unittest import mock

import pytest

from rdump import __logger__, __util__, encode_name


class TestEncodeName:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("root", "root"),
            ("/", "root"),
            ("/var/log", "var-log"),
            ("tank/home/", "tank-home"),
        ],
    )
    def test_encode(self, name, expected):
        assert encode_name(name) == expected


class TestRunStamp:
    def test_format(self):
        now = time.mktime((2026, 3, 4, 5, 6, 7, 0, 0, -1))
        assert __util__.run_stamp(now) == "20260304T050607"

    def test_sortable(self):
        assert __util__.run_stamp(1_000_000) < __util__.run_stamp(2_000_000)


class TestLogHeading:
    def test_padded(self):
        heading = __util__.log_heading("Volume: root")
        assert heading.startswith("--[ Volume: root ]")
        assert len(heading) == 50


class TestExecSubprocess:
    def test_run_checks_by_default(self):
        with mock.patch("rdump.__util__.subprocess.run") as run:
            __util__.exec_subprocess(["true"])
        run.assert_called_once_with(["true"], check=True)

    def test_check_can_be_disabled(self):
        with mock.patch("rdump.__util__.subprocess.run") as run:
            __util__.exec_subprocess(["false"], check=False)
        run.assert_called_once_with(["false"], check=False)

    def test_popen(self):
        with mock.patch("rdump.__util__.subprocess.Popen") as popen:
            __util__.exec_subprocess(["zfs", "send"], method="Popen", stdout=-1)
        popen.assert_called_once_with(["zfs", "send"], stdout=-1)

    def test_failure_raises(self):
        error = subprocess.CalledProcessError(1, ["false"])
        with mock.patch("rdump.__util__.subprocess.run", side_effect=error):
            with pytest.raises(subprocess.CalledProcessError):
                __util__.exec_subprocess(["false"])


class TestCreateLogger:
    def test_level(self):
        __logger__.create_logger("WARNING")
        assert __logger__.logger.level == logging.WARNING
        assert __logger__.rich_handler in __logger__.logger.handlers

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "rdump.log"
        __logger__.create_logger("INFO", str(log_file))
        try:
            __logger__.logger.info("hello from the tools")
            for handler in __logger__.logger.handlers:
                handler.flush()
            assert "hello from the tools" in log_file.read_text()
        finally:
            __logger__.create_logger("INFO")
