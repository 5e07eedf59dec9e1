import random
import re
import threading
import time

import cv2
import numpy as np
import pytest

from vehicle_tally import DetectionConfig, DetectionMonitor, VehicleDetectionService
from vehicle_tally.errors import DecodeError, InferenceError
from vehicle_tally.types import RawOutputs, VehicleCategory

FRAME = np.zeros((240, 320, 3), dtype=np.uint8)


def simulated_service(seed=11, **overrides):
    config = DetectionConfig(mode="simulation", simulation_seed=seed, **overrides)
    service = VehicleDetectionService(config)
    service.initialize()
    return service


def model_service(backend, **overrides):
    service = VehicleDetectionService(DetectionConfig(**overrides), loader=lambda config: backend)
    service.initialize()
    return service


def test_simulation_mode_never_loads_the_model():
    calls = []
    service = VehicleDetectionService(
        DetectionConfig(mode="simulation"),
        loader=lambda config: calls.append(config),
    )

    assert service.initialize() is False
    assert service.is_real_model_active() is False
    assert calls == []


def test_failed_model_load_falls_back_to_simulation():
    def broken_loader(config):
        raise OSError("weights missing")

    service = VehicleDetectionService(
        DetectionConfig(simulation_seed=3), loader=broken_loader, rng=random.Random(3)
    )

    assert service.initialize() is False
    assert not service.is_real_model_active()

    produced = [service.detect(FRAME) for _ in range(20)]
    assert service.snapshot().total == sum(len(batch) for batch in produced)


def test_real_model_path_decodes_and_records(fake_backend, make_raw):
    raw = make_raw([[0.1, 0.2, 0.5, 0.6], [0.0, 0.0, 0.3, 0.3]], [2, 0], [0.9, 0.95])
    backend = fake_backend(outputs=raw)
    service = model_service(backend)

    assert service.is_real_model_active()
    detections = service.detect(FRAME)

    assert [det.category for det in detections] == [VehicleCategory.CAR]
    assert detections[0].bbox.x == pytest.approx(64.0)
    assert backend.shapes == [(1, 320, 320, 3)]
    assert service.snapshot()[VehicleCategory.CAR] == 1
    assert service.history() == detections


def test_decode_failure_is_surfaced_and_nothing_is_recorded(fake_backend):
    malformed = RawOutputs(np.zeros((2, 3)), np.zeros(2), np.zeros(2), 2)
    service = model_service(fake_backend(outputs=malformed))

    with pytest.raises(DecodeError):
        service.detect(FRAME)

    assert service.snapshot().total == 0
    assert service.history() == []


def test_inference_failure_is_surfaced_and_nothing_is_recorded(fake_backend):
    service = model_service(fake_backend(error=RuntimeError("device lost")))

    with pytest.raises(InferenceError):
        service.detect(FRAME)

    assert service.snapshot().total == 0


def test_detect_without_recording(fake_backend, make_raw):
    service = model_service(fake_backend(outputs=make_raw([[0.1, 0.1, 0.4, 0.4]], [3], [0.8])))

    detections = service.detect(FRAME, record=False)

    assert len(detections) == 1
    assert service.snapshot().total == 0


def test_detect_path_loads_image_from_disk(tmp_path, fake_backend, make_raw):
    image_path = tmp_path / "frame.png"
    cv2.imwrite(str(image_path), np.full((120, 160, 3), 200, dtype=np.uint8))
    service = model_service(fake_backend(outputs=make_raw([[0.1, 0.1, 0.4, 0.4]], [5], [0.8])))

    detections = service.detect_path(image_path)

    assert [det.category for det in detections] == [VehicleCategory.BUS]
    with pytest.raises(FileNotFoundError):
        service.detect_path(tmp_path / "missing.png")


def test_simulate_frame_works_with_real_model_active(fake_backend, make_raw):
    service = model_service(fake_backend(outputs=make_raw([], [], [])))

    batches = [service.simulate_frame() for _ in range(30)]

    assert service.snapshot().total == sum(len(batch) for batch in batches)


def test_reset_then_snapshot_is_empty():
    service = simulated_service()
    for _ in range(25):
        service.detect(None)

    service.reset()

    assert service.snapshot().total == 0
    assert service.history() == []


def test_export_and_restore_round_trip():
    source = simulated_service(seed=21)
    for _ in range(15):
        source.detect(None)

    target = simulated_service(seed=1)
    target.restore(source.export())

    assert target.snapshot() == source.snapshot()
    assert target.history() == source.history()


def test_placeholder_plates_when_enabled():
    service = simulated_service(placeholder_plates=True)

    plates = [det.plate_guess for _ in range(30) for det in service.detect(None)]

    assert plates
    assert all(re.fullmatch(r"[A-Z]{3}\d{4}", plate) for plate in plates)


def test_history_limit_from_config():
    service = simulated_service(history_limit=5)
    for _ in range(60):
        service.detect(None)

    assert len(service.history()) <= 5
    assert service.snapshot().total >= len(service.history())


def test_close_unloads_model(fake_backend):
    backend = fake_backend()
    service = model_service(backend)

    service.close()

    assert backend.closed
    assert not service.is_real_model_active()


def test_invalid_config_is_rejected():
    with pytest.raises(ValueError):
        VehicleDetectionService(DetectionConfig(confidence_threshold=1.5))
    with pytest.raises(ValueError):
        VehicleDetectionService(DetectionConfig(mode="realistic"))


def test_monitor_runs_requested_cycles_and_reports_detections():
    service = simulated_service(seed=8)
    reported = []
    monitor = DetectionMonitor(service, lambda: FRAME, interval=0.001, on_detection=reported.append)

    monitor.run(max_cycles=5)

    assert monitor.cycles == 5
    assert len(reported) == 5
    assert service.snapshot().total == sum(len(batch) for batch in reported)


def test_monitor_skips_cycle_while_previous_is_running():
    service = simulated_service()
    entered = threading.Event()
    release = threading.Event()

    def slow_frame():
        entered.set()
        release.wait(5)
        return FRAME

    monitor = DetectionMonitor(service, slow_frame, interval=0.01)
    worker = threading.Thread(target=monitor.run_cycle)
    worker.start()
    try:
        assert entered.wait(5)
        assert monitor.run_cycle() is None
        assert monitor.skipped == 1
    finally:
        release.set()
        worker.join(5)

    assert monitor.cycles == 1


def test_monitor_discards_results_when_stopped_mid_cycle(fake_backend, make_raw):
    backend = fake_backend(outputs=make_raw([[0.1, 0.1, 0.4, 0.4]], [2], [0.9]))
    service = model_service(backend)
    monitor = DetectionMonitor(service, lambda: FRAME, interval=0.01)
    backend.on_predict = monitor.stop

    assert monitor.run_cycle() == []
    assert backend.shapes
    assert service.snapshot().total == 0
    assert service.history() == []


def test_monitor_logs_failed_cycle_and_continues(fake_backend):
    service = model_service(fake_backend(error=RuntimeError("boom")))
    monitor = DetectionMonitor(service, lambda: FRAME, interval=0.001)

    monitor.run(max_cycles=3)

    assert monitor.failures == 3
    assert monitor.cycles == 0
    assert service.snapshot().total == 0


def test_monitor_stops_at_end_of_stream():
    service = simulated_service()
    frames = iter([FRAME, FRAME])
    monitor = DetectionMonitor(service, lambda: next(frames, None), interval=0.001)

    monitor.run(max_cycles=10)

    assert monitor.cycles == 2


def test_monitor_background_thread_start_and_stop():
    service = simulated_service()
    monitor = DetectionMonitor(service, interval=0.005)

    monitor.start()
    deadline = time.monotonic() + 5
    while monitor.cycles < 3 and time.monotonic() < deadline:
        time.sleep(0.005)
    monitor.stop(timeout=5)

    assert monitor.cycles >= 3
    assert not monitor.running
    total = service.snapshot().total
    time.sleep(0.05)
    assert service.snapshot().total == total


def test_stop_waits_for_cycle_that_is_recording():
    service = simulated_service(seed=2)
    monitor = DetectionMonitor(service, lambda: FRAME, interval=0.01)
    recording = threading.Event()
    release = threading.Event()
    original_record = service.record

    def slow_record(detections):
        recording.set()
        release.wait(5)
        return original_record(detections)

    service.record = slow_record
    worker = threading.Thread(target=monitor.run_cycle)
    worker.start()
    assert recording.wait(5)

    stopper = threading.Thread(target=monitor.stop)
    stopper.start()
    stopper.join(0.1)
    assert stopper.is_alive()

    release.set()
    stopper.join(5)
    worker.join(5)
    assert not stopper.is_alive()
    assert monitor.cycles == 1

    total = service.snapshot().total
    assert monitor.run_cycle() == []
    assert service.snapshot().total == total


def test_stop_before_run_is_honoured_until_restarted():
    service = simulated_service()
    monitor = DetectionMonitor(service, lambda: FRAME, interval=0.005)

    monitor.stop()
    monitor.run(max_cycles=3)

    assert monitor.cycles == 0
    assert service.snapshot().total == 0

    monitor.start()
    deadline = time.monotonic() + 5
    while monitor.cycles < 1 and time.monotonic() < deadline:
        time.sleep(0.005)
    monitor.stop(timeout=5)

    assert monitor.cycles >= 1


def test_service_summary_uses_injected_clock(make_detection, clock):
    service = VehicleDetectionService(DetectionConfig(mode="simulation"), clock=clock)
    assert service.summary().rate_per_minute is None

    service.record([make_detection(VehicleCategory.BUS), make_detection(VehicleCategory.BUS)])

    summary = service.summary()
    assert summary.most_common is VehicleCategory.BUS
    assert summary.percentages[VehicleCategory.BUS] == pytest.approx(100.0)
    assert summary.rate_per_minute == pytest.approx(2.0)
