"""Unit tests for scratch file handling."""

import os
import signal

import pytest

from keycloak_deployer.utils.scratch import (
    TerminationRequested,
    scratch_file,
    termination_signals_raise,
    write_text_atomic,
)


class TestScratchFile:
    def test_removed_after_block(self, tmp_path):
        with scratch_file(directory=tmp_path) as path:
            assert path.exists()
            path.write_text("data")

        assert not path.exists()

    def test_removed_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with scratch_file(directory=tmp_path) as path:
                raise RuntimeError("boom")

        assert not path.exists()

    def test_already_removed_is_fine(self, tmp_path):
        with scratch_file(directory=tmp_path) as path:
            path.unlink()

        assert not path.exists()


class TestTerminationSignals:
    def test_sigterm_raises_and_cleans_up(self, tmp_path):
        """SIGTERM unwinds the block so scratch files are removed."""
        with pytest.raises(TerminationRequested):
            with termination_signals_raise(), scratch_file(directory=tmp_path) as path:
                os.kill(os.getpid(), signal.SIGTERM)

        assert not path.exists()

    def test_previous_handler_restored(self):
        previous = signal.getsignal(signal.SIGTERM)

        with termination_signals_raise():
            assert signal.getsignal(signal.SIGTERM) is not previous

        assert signal.getsignal(signal.SIGTERM) == previous


class TestWriteTextAtomic:
    def test_writes_exact_text(self, tmp_path):
        target = tmp_path / "nested" / "out.yaml"

        write_text_atomic(target, "a\r\nb\n")

        assert target.read_bytes() == b"a\r\nb\n"
        assert [p.name for p in target.parent.iterdir()] == ["out.yaml"]
