import json
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from warp_overlay import run as run_mod
from warp_overlay.backends import OpenCVBackend, VPIBackend
from warp_overlay.errors import PipelineError
from warp_overlay.output import NullOutput
from warp_overlay.worker import OverlayWorker

from conftest import FakeCapture, make_fake_vpi, make_frames


@pytest.fixture(autouse=True)
def no_signal_handlers():
    with patch.object(run_mod.signal, "signal") as mock_signal:
        yield mock_signal


def test_missing_video_exits_non_zero():
    with patch("warp_overlay.run.OverlayWorker") as mock_worker:
        assert run_mod.main([]) == run_mod.EXIT_ERROR
    mock_worker.assert_not_called()


def test_missing_config_file_exits_non_zero(tmp_path):
    assert run_mod.main(["--config", str(tmp_path / "nope.json")]) == run_mod.EXIT_ERROR


def test_bad_log_level_exits_non_zero():
    assert run_mod.main(["--video", "clip.mp4", "--log-level", "LOUD"]) == run_mod.EXIT_ERROR


def test_cli_overrides_config_file(tmp_path, no_signal_handlers):
    cfg_path = tmp_path / "overlay.json"
    cfg_path.write_text(json.dumps({"video_path": "a.mp4", "width": 320}), encoding="utf-8")
    fake_worker = MagicMock()

    with patch("warp_overlay.run.OverlayWorker", return_value=fake_worker) as mock_cls:
        code = run_mod.main(
            ["--config", str(cfg_path), "--camera", "2", "--height", "240", "--backend", "opencv", "--no-display"]
        )

    assert code == run_mod.EXIT_OK
    cfg = mock_cls.call_args[0][0]
    assert cfg.video_path == "a.mp4"
    assert cfg.camera == 2
    assert (cfg.width, cfg.height) == (320, 240)
    assert cfg.backend == "opencv"
    assert cfg.display is False
    fake_worker.run.assert_called_once()
    # SIGINT handler routes to worker.stop
    handler = no_signal_handlers.call_args_list[0][0][1]
    handler(2, None)
    fake_worker.stop.assert_called_once()


def test_usage_error_exits_two():
    with pytest.raises(SystemExit) as exc:
        run_mod.main(["--backend", "metal"])
    assert exc.value.code == 2


def _patched_worker(camera, video, backend):
    def _build(cfg):
        return OverlayWorker(cfg, output=NullOutput(), camera=camera, video=video, backend=backend)
    return _build


def test_video_exhausted_exits_zero(scene, secondary_image):
    backend = OpenCVBackend()
    camera = FakeCapture(make_frames(scene, 5))
    video = FakeCapture(make_frames(secondary_image, 2), 320, 240)

    with patch("warp_overlay.run.OverlayWorker", side_effect=_patched_worker(camera, video, backend)):
        code = run_mod.main(["--video", "clip.mp4", "--backend", "opencv", "--no-display"])

    assert code == run_mod.EXIT_OK
    assert backend.teardown_count == 1


def test_stage_failure_exits_one_after_single_teardown(scene, secondary_image):
    class FailingBackend(OpenCVBackend):
        def _sync(self):
            raise RuntimeError("stream error")

    backend = FailingBackend()
    camera = FakeCapture(make_frames(scene, 5))
    video = FakeCapture(make_frames(secondary_image, 5), 320, 240)

    with patch("warp_overlay.run.OverlayWorker", side_effect=_patched_worker(camera, video, backend)):
        code = run_mod.main(["--video", "clip.mp4", "--backend", "opencv", "--no-display"])

    assert code == run_mod.EXIT_ERROR
    assert backend.teardown_count == 1
    assert camera.stop_calls == 1


def test_worker_error_is_reported():
    fake_worker = MagicMock()
    fake_worker.run.side_effect = PipelineError("open", "no device")
    with patch("warp_overlay.run.OverlayWorker", return_value=fake_worker):
        assert run_mod.main(["--video", "clip.mp4"]) == run_mod.EXIT_ERROR


def test_stream_failure_exits_one(scene, secondary_image):
    fake = make_fake_vpi(np.zeros_like(scene))
    fake.Stream.return_value.__exit__.side_effect = RuntimeError("VPI_ERROR_INTERNAL")
    backend = VPIBackend(loader=lambda: fake)
    camera = FakeCapture(make_frames(scene, 3))
    video = FakeCapture(make_frames(secondary_image, 3), 320, 240)

    with patch("warp_overlay.run.OverlayWorker", side_effect=_patched_worker(camera, video, backend)), \
            patch.object(run_mod.logger, "error") as mock_error:
        code = run_mod.main(["--video", "clip.mp4", "--no-display"])

    assert code == run_mod.EXIT_ERROR
    assert backend.teardown_count == 1
    assert mock_error.call_args[0][1].stage == "submit"
