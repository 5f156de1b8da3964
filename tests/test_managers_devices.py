"""Tests for the simulator and emulator managers with a scripted command runner."""

import json

import pytest

from expo_mcp.managers import emulator as emulator_module
from expo_mcp.managers import simulator as simulator_module
from expo_mcp.managers.downloads import DownloadCache
from expo_mcp.managers.emulator import EmulatorManager, parse_emulator_serial
from expo_mcp.managers.simulator import (
    SimulatorManager,
    parse_device_list,
    pick_default_device,
)
from expo_mcp.utils.exceptions import CommandError, NotFoundError, TimeoutError, ToolError
from expo_mcp.utils.process import CommandResult


class ScriptedRunner:
    """Replacement for run_command: first matching prefix wins, every call is recorded."""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.rules: list[tuple[tuple[str, ...], object]] = []
        self.hooks: list[tuple[tuple[str, ...], object]] = []

    def on(self, *prefix: str, stdout: str = "", returncode: int = 0, stderr: str = "", missing: bool = False):
        self.rules.insert(0, (prefix, (stdout, returncode, stderr, missing)))
        return self

    async def __call__(self, *args, timeout=60.0, check=True, cwd=None):
        argv = [str(a) for a in args]
        self.calls.append(argv)
        try:
            return self._respond(argv, check)
        finally:
            for prefix, callback in self.hooks:
                if tuple(argv[: len(prefix)]) == prefix:
                    callback()

    def _respond(self, argv: list[str], check: bool) -> CommandResult:
        for prefix, (stdout, returncode, stderr, missing) in self.rules:
            if tuple(argv[: len(prefix)]) == prefix:
                if missing:
                    raise CommandError(argv, None, f"{argv[0]}: command not found")
                if check and returncode != 0:
                    raise CommandError(argv, returncode, stderr)
                return CommandResult(argv, returncode, stdout, stderr)
        return CommandResult(argv, 0, "", "")

    def after(self, *prefix: str, callback) -> None:
        """Run callback once a command with this prefix has been answered."""
        self.hooks.append((prefix, callback))

    def ran(self, *prefix: str) -> bool:
        return any(tuple(call[: len(prefix)]) == prefix for call in self.calls)


def _simctl_json(*devices: tuple[str, str, str, str]) -> str:
    data: dict[str, list] = {}
    for runtime, udid, name, state in devices:
        data.setdefault(runtime, []).append({"udid": udid, "name": name, "state": state, "isAvailable": True})
    return json.dumps({"devices": data})


IOS_17 = "com.apple.CoreSimulator.SimRuntime.iOS-17-2"
IOS_16 = "com.apple.CoreSimulator.SimRuntime.iOS-16-4"


@pytest.fixture
def sim_runner(monkeypatch):
    runner = ScriptedRunner()
    monkeypatch.setattr(simulator_module, "run_command", runner)
    return runner


@pytest.fixture
def emu_runner(monkeypatch):
    runner = ScriptedRunner()
    monkeypatch.setattr(emulator_module, "run_command", runner)
    return runner


def _simulator(tmp_path) -> SimulatorManager:
    return SimulatorManager(DownloadCache(tmp_path), poll_interval_seconds=0.01, settle_seconds=0)


def _emulator(tmp_path) -> EmulatorManager:
    return EmulatorManager(DownloadCache(tmp_path), poll_interval_seconds=0.01, settle_seconds=0, stop_grace_seconds=0)


class TestSimulatorParsing:
    def test_parse_device_list_flattens_runtimes(self) -> None:
        devices = parse_device_list(_simctl_json((IOS_17, "A", "iPhone 15", "Shutdown"), (IOS_16, "B", "iPad", "Booted")))
        assert [(d.udid, d.runtime, d.state) for d in devices] == [("A", IOS_17, "Shutdown"), ("B", IOS_16, "Booted")]
        assert devices[0].ios_version == (17, 2)

    def test_default_device_prefers_newest_iphone(self) -> None:
        devices = parse_device_list(
            _simctl_json(
                (IOS_16, "OLD", "iPhone 14", "Shutdown"),
                (IOS_17, "NEW", "iPhone 15", "Shutdown"),
                (IOS_17, "PAD", "iPad Pro", "Shutdown"),
            )
        )
        assert pick_default_device(devices).udid == "NEW"

    def test_default_device_falls_back_to_any_shutdown_device(self) -> None:
        devices = parse_device_list(_simctl_json((IOS_17, "PAD", "iPad Pro", "Shutdown")))
        assert pick_default_device(devices).udid == "PAD"
        assert pick_default_device([]) is None


class TestSimulatorManager:
    @pytest.mark.asyncio
    async def test_boot_picks_and_waits_for_device(self, tmp_path, sim_runner) -> None:
        manager = _simulator(tmp_path)
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "NEW", "iPhone 15", "Shutdown")))

        sim_runner.after(
            "xcrun", "simctl", "boot",
            callback=lambda: sim_runner.on(
                "xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "NEW", "iPhone 15", "Booted"))
            ),
        )
        result = await manager.boot()
        assert result == {"udid": "NEW", "name": "iPhone 15"}
        assert sim_runner.ran("xcrun", "simctl", "boot", "NEW")
        assert sim_runner.ran("open", "-a", "Simulator")

    @pytest.mark.asyncio
    async def test_boot_reuses_booted_device(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "B", "iPhone 15", "Booted")))
        result = await _simulator(tmp_path).boot()
        assert result == {"udid": "B", "name": "iPhone 15"}
        assert not sim_runner.ran("xcrun", "simctl", "boot")

    @pytest.mark.asyncio
    async def test_boot_refuses_when_other_device_is_booted(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "B", "iPhone 15", "Booted")))
        with pytest.raises(ToolError, match="already booted: iPhone 15"):
            await _simulator(tmp_path).boot("iPhone 15 Pro")

    @pytest.mark.asyncio
    async def test_boot_unknown_name(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "A", "iPhone 15", "Shutdown")))
        with pytest.raises(NotFoundError, match="iPhone 99"):
            await _simulator(tmp_path).boot("iPhone 99")

    @pytest.mark.asyncio
    async def test_boot_ignores_already_booted_error_and_can_time_out(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "A", "iPhone 15", "Shutdown")))
        sim_runner.on(
            "xcrun", "simctl", "boot",
            returncode=149,
            stderr="Unable to boot device in current state: Booted",
        )
        with pytest.raises(TimeoutError, match="did not boot within 0.05 seconds"):
            await _simulator(tmp_path).boot(timeout_secs=0.05)

    @pytest.mark.asyncio
    async def test_install_skips_when_already_installed(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "B", "iPhone 15", "Booted")))
        sim_runner.on("xcrun", "simctl", "get_app_container", stdout="/path/to/Exponent.app\n")
        result = await _simulator(tmp_path).install_expo_go()
        assert result == {"installed": True, "message": "Expo Go is already installed"}
        assert not sim_runner.ran("xcrun", "simctl", "install")

    @pytest.mark.asyncio
    async def test_install_requires_booted_simulator(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "A", "iPhone 15", "Shutdown")))
        with pytest.raises(ToolError, match="No booted simulator"):
            await _simulator(tmp_path).install_expo_go()

    @pytest.mark.asyncio
    async def test_install_downloads_and_verifies(self, tmp_path, sim_runner) -> None:
        manager = _simulator(tmp_path)
        bundle = tmp_path / "ExpoGo-2.32.13.app"
        bundle.mkdir()
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "B", "iPhone 15", "Booted")))
        sim_runner.on("xcrun", "simctl", "get_app_container", returncode=2, stderr="No such app")
        sim_runner.after(
            "xcrun", "simctl", "install",
            callback=lambda: sim_runner.on("xcrun", "simctl", "get_app_container", stdout="/containers/Exponent.app"),
        )
        result = await manager.install_expo_go()
        assert result == {"installed": True, "message": "Expo Go installed successfully"}
        assert sim_runner.ran("xcrun", "simctl", "install", "B", str(bundle))

    @pytest.mark.asyncio
    async def test_open_url_rewrites_scheme(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "B", "iPhone 15", "Booted")))
        sim_runner.on("xcrun", "simctl", "get_app_container", stdout="/containers/Exponent.app")
        result = await _simulator(tmp_path).open_in_expo_go("http://localhost:8081")
        assert result == {"success": True, "message": "Opened exp://localhost:8081 in Expo Go"}
        assert sim_runner.ran("xcrun", "simctl", "openurl", "B", "exp://localhost:8081")

    @pytest.mark.asyncio
    async def test_launch_requires_expo_go(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "B", "iPhone 15", "Booted")))
        sim_runner.on("xcrun", "simctl", "get_app_container", returncode=2)
        with pytest.raises(ToolError, match="Expo Go is not installed"):
            await _simulator(tmp_path).launch_expo_go()

    @pytest.mark.asyncio
    async def test_shutdown_without_booted_device_is_a_no_op(self, tmp_path, sim_runner) -> None:
        sim_runner.on("xcrun", "simctl", "list", stdout=_simctl_json((IOS_17, "A", "iPhone 15", "Shutdown")))
        await _simulator(tmp_path).shutdown()
        assert not sim_runner.ran("xcrun", "simctl", "shutdown")


ADB_DEVICES = "List of devices attached\nemulator-5554\tdevice\n\n"


class TestEmulatorManager:
    def test_parse_serial(self) -> None:
        assert parse_emulator_serial(ADB_DEVICES) == "emulator-5554"
        assert parse_emulator_serial("List of devices attached\nemulator-5554\toffline\n") is None
        assert parse_emulator_serial("List of devices attached\nR58M123\tdevice\n") is None

    @pytest.mark.asyncio
    async def test_reuses_running_emulator(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout=ADB_DEVICES)
        emu_runner.on("adb", "-s", "emulator-5554", "emu", "avd", "name", stdout="Pixel_7_API_34\nOK\n")
        assert await _emulator(tmp_path).start() == "Pixel_7_API_34"
        assert not emu_runner.ran("emulator", "-list-avds")

    @pytest.mark.asyncio
    async def test_refuses_different_running_emulator(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout=ADB_DEVICES)
        emu_runner.on("adb", "-s", "emulator-5554", "emu", "avd", "name", stdout="Pixel_7_API_34\nOK\n")
        with pytest.raises(ToolError, match="different emulator"):
            await _emulator(tmp_path).start("Pixel_8")

    @pytest.mark.asyncio
    async def test_unknown_avd(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout="List of devices attached\n")
        emu_runner.on("emulator", "-list-avds", stdout="Pixel_7_API_34\n")
        with pytest.raises(NotFoundError, match="Pixel_8"):
            await _emulator(tmp_path).start("Pixel_8")

    @pytest.mark.asyncio
    async def test_missing_emulator_binary(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout="List of devices attached\n")
        emu_runner.on("emulator", "-list-avds", missing=True)
        with pytest.raises(ToolError, match="ANDROID_HOME"):
            await _emulator(tmp_path).start()

    @pytest.mark.asyncio
    async def test_no_avds(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout="List of devices attached\n")
        emu_runner.on("emulator", "-list-avds", stdout="\n")
        with pytest.raises(ToolError, match="No Android emulators found"):
            await _emulator(tmp_path).start()

    @pytest.mark.asyncio
    async def test_wait_for_boot_polls_boot_completed(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout=ADB_DEVICES)
        emu_runner.on("adb", "-s", "emulator-5554", "shell", "getprop", stdout="1\n")
        await _emulator(tmp_path).wait_for_boot(1)
        assert emu_runner.ran("adb", "-s", "emulator-5554", "shell", "getprop", "sys.boot_completed")

    @pytest.mark.asyncio
    async def test_wait_for_boot_times_out(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout="List of devices attached\nemulator-5554\toffline\n")
        with pytest.raises(TimeoutError, match="Emulator did not boot"):
            await _emulator(tmp_path).wait_for_boot(0.05)

    @pytest.mark.asyncio
    async def test_expo_go_info_reads_version(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout=ADB_DEVICES)
        emu_runner.on("adb", "-s", "emulator-5554", "shell", "pm", stdout="package:host.exp.exponent\n")
        emu_runner.on("adb", "-s", "emulator-5554", "shell", "dumpsys", stdout="    versionName=2.32.13\n")
        info = await _emulator(tmp_path).expo_go_info()
        assert info == {"installed": True, "package": "host.exp.exponent", "version": "2.32.13"}

    @pytest.mark.asyncio
    async def test_install_uses_cached_apk(self, tmp_path, emu_runner) -> None:
        manager = _emulator(tmp_path)
        apk = tmp_path / "ExpoGo-2.32.13.apk"
        apk.write_bytes(b"APK")
        emu_runner.on("adb", "devices", stdout=ADB_DEVICES)
        emu_runner.on("adb", "-s", "emulator-5554", "shell", "pm", stdout="")
        emu_runner.after(
            "adb", "-s", "emulator-5554", "install",
            callback=lambda: emu_runner.on("adb", "-s", "emulator-5554", "shell", "pm", stdout="package:host.exp.exponent\n"),
        )
        result = await manager.install_expo_go()
        assert result["message"] == "Expo Go installed successfully"
        assert emu_runner.ran("adb", "-s", "emulator-5554", "install", "-r", str(apk))

    @pytest.mark.asyncio
    async def test_open_url_uses_view_intent(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout=ADB_DEVICES)
        emu_runner.on("adb", "-s", "emulator-5554", "shell", "pm", stdout="package:host.exp.exponent\n")
        result = await _emulator(tmp_path).open_in_expo_go("https://u.expo.dev/x")
        assert result["message"] == "Opened exp://u.expo.dev/x in Expo Go"
        assert emu_runner.ran(
            "adb", "-s", "emulator-5554", "shell", "am", "start",
            "-a", "android.intent.action.VIEW", "-d", "exp://u.expo.dev/x", "host.exp.exponent",
        )

    @pytest.mark.asyncio
    async def test_install_without_emulator(self, tmp_path, emu_runner) -> None:
        emu_runner.on("adb", "devices", stdout="List of devices attached\n")
        with pytest.raises(ToolError, match="No running emulator"):
            await _emulator(tmp_path).install_expo_go()

    @pytest.mark.asyncio
    async def test_stop_tolerates_missing_adb(self, tmp_path, emu_runner, log_records) -> None:
        emu_runner.on("adb", missing=True)
        manager = _emulator(tmp_path)
        await manager.stop()
        assert manager.current_device is None
        assert any("adb emu kill failed" in r for r in log_records)
