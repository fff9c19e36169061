from __future__ import annotations

from typer.testing import CliRunner

from blesensor import cli
from blesensor.core.events import ReadingEvent, StatusEvent
from blesensor.core.model import (
    ClientStatus,
    ConnectionState,
    DiscoveredDevice,
    ErrorKind,
    SensorReading,
    TargetDescriptor,
    TargetProfile,
    TimingPolicy,
)

PROFILE = TargetProfile(
    id="bench",
    name="Bench probe",
    target=TargetDescriptor(
        address="AA:BB",
        characteristic_uuid="0000fff1-0000-1000-8000-00805f9b34fb",
        service_uuid="0000fff0-0000-1000-8000-00805f9b34fb",
    ),
    timing=TimingPolicy(),
)


class FakeService:
    def __init__(self) -> None:
        self.profiles = {"bench": PROFILE}
        self.load_warnings = ()

    def list_profiles(self):
        return list(self.profiles.values())

    def resolve_profile(self, profile_id=None):
        return PROFILE

    def list_devices(self, timeout_s=5.0):
        return [DiscoveredDevice("11:22", None), DiscoveredDevice("AA:BB", "Probe")]

    async def monitor(self, profile_id=None, *, duration_s=None, listener=None):
        listener(StatusEvent(ClientStatus(ConnectionState.SCANNING, "Scanning...")))
        listener(ReadingEvent(SensorReading(value=35.59, raw=bytes.fromhex("0102030405233b"))))
        return ClientStatus(ConnectionState.IDLE, "Disconnected from Probe")


runner = CliRunner()


def test_profiles_command(monkeypatch):
    monkeypatch.setattr(cli, "MonitorService", FakeService)
    result = runner.invoke(cli.app, ["profiles"])
    assert result.exit_code == 0
    assert "bench: Bench probe" in result.stdout
    assert "address: AA:BB" in result.stdout
    assert "characteristic: 0000fff1-0000-1000-8000-00805f9b34fb" in result.stdout


def test_devices_command_marks_target(monkeypatch):
    monkeypatch.setattr(cli, "MonitorService", FakeService)
    result = runner.invoke(cli.app, ["devices", "--timeout", "1"])
    assert result.exit_code == 0
    assert "11:22 <unnamed>\n" in result.stdout
    assert "AA:BB Probe <- target" in result.stdout


def test_decode_command():
    result = runner.invoke(cli.app, ["decode", "0102030405233b"])
    assert result.exit_code == 0
    assert "35.59°C" in result.stdout


def test_decode_command_rejects_bad_payload():
    result = runner.invoke(cli.app, ["decode", "01020304052g3b"])
    assert result.exit_code == 1
    assert "Error:" in result.stderr
    assert "Traceback" not in result.stderr


def test_monitor_command_prints_status_and_readings(monkeypatch):
    monkeypatch.setattr(cli, "MonitorService", FakeService)
    result = runner.invoke(cli.app, ["monitor", "--duration", "1"])
    assert result.exit_code == 0
    assert "[scanning] Scanning..." in result.stdout
    assert "35.59°C" in result.stdout


def test_monitor_command_exits_nonzero_on_failure(monkeypatch):
    class FailingSession(FakeService):
        async def monitor(self, profile_id=None, *, duration_s=None, listener=None):
            return ClientStatus(ConnectionState.FAILED, "Timed out after 30s waiting for scan", ErrorKind.TIMEOUT)

    monkeypatch.setattr(cli, "MonitorService", FailingSession)
    result = runner.invoke(cli.app, ["monitor"])
    assert result.exit_code == 1
    assert "Error: Timed out after 30s waiting for scan" in result.stderr


def test_monitor_error_is_clean(monkeypatch):
    class RadioOffService(FakeService):
        async def monitor(self, profile_id=None, *, duration_s=None, listener=None):
            from blesensor.core.errors import RadioUnavailableError

            raise RadioUnavailableError("Bluetooth radio is not powered on")

    monkeypatch.setattr(cli, "MonitorService", RadioOffService)
    result = runner.invoke(cli.app, ["monitor"])
    assert result.exit_code == 1
    assert "Error: Bluetooth radio is not powered on" in result.stderr
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.stderr


def test_load_warning_is_printed(monkeypatch):
    class WarnService(FakeService):
        def __init__(self) -> None:
            super().__init__()
            self.load_warnings = ("User profile 'default' overrides packaged profile",)

    monkeypatch.setattr(cli, "MonitorService", WarnService)
    result = runner.invoke(cli.app, ["profiles"])
    assert result.exit_code == 0
    assert "Warning: User profile 'default' overrides packaged profile" in result.stderr
