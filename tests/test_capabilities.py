"""Tests for the capability probe."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ctrldeck.capabilities import CapabilitySet, find_backlight, probe_capabilities
from ctrldeck.config import DeckConfig

PREFERENCE = DeckConfig().backlight_preference


def _probe(tmp_path, tools=(), pulse=False, dbus=False, system="linux"):
    table = {name: f"/usr/bin/{name}" for name in tools}
    with patch("ctrldeck.capabilities.find_tool", side_effect=lambda name, *_: table.get(name)), \
            patch("ctrldeck.capabilities._pulse_available", return_value=pulse), \
            patch("ctrldeck.capabilities._dbus_session_available", return_value=dbus):
        return probe_capabilities(DeckConfig(), system=system, sys_root=tmp_path)


def _backlight(root, name, max_brightness="100", brightness="50"):
    device = root / "class" / "backlight" / name
    device.mkdir(parents=True)
    if max_brightness is not None:
        (device / "max_brightness").write_text(max_brightness)
    (device / "brightness").write_text(brightness)
    return device


# ──────────────────────────────────────────────────────────────────
# Backlight selection
# ──────────────────────────────────────────────────────────────────

class TestFindBacklight:
    def test_prefers_priority_list(self, tmp_path):
        _backlight(tmp_path, "acpi_video0")
        intel = _backlight(tmp_path, "intel_backlight", "1200")
        path, maximum = find_backlight(tmp_path / "class" / "backlight", PREFERENCE)
        assert path == str(intel)
        assert maximum == 1200

    def test_falls_back_to_first_found(self, tmp_path):
        _backlight(tmp_path, "zz_panel")
        first = _backlight(tmp_path, "ddcci5")
        path, _ = find_backlight(tmp_path / "class" / "backlight", PREFERENCE)
        assert path == str(first)

    def test_unreadable_max_is_100(self, tmp_path):
        _backlight(tmp_path, "intel_backlight", max_brightness=None)
        _, maximum = find_backlight(tmp_path / "class" / "backlight", PREFERENCE)
        assert maximum == 100

    def test_no_devices(self, tmp_path):
        assert find_backlight(tmp_path / "class" / "backlight", PREFERENCE) == (None, 0)


# ──────────────────────────────────────────────────────────────────
# Linux probe
# ──────────────────────────────────────────────────────────────────

class TestLinuxProbe:
    def test_full_host(self, tmp_path):
        _backlight(tmp_path, "intel_backlight", "937")
        caps = _probe(
            tmp_path,
            tools=("pactl", "pacmd", "amixer", "brightnessctl", "busctl", "playerctl"),
            pulse=True, dbus=True,
        )
        assert caps.platform == "linux"
        assert caps.volume == ("pulsectl", "pactl", "amixer")
        assert caps.mic == ("pulsectl", "pactl", "pacmd", "amixer")
        assert caps.brightness == ("sysfs", "brightnessctl", "logind")
        assert caps.media == ("mpris", "playerctl")
        assert caps.mixer_tool == "pulsectl"
        assert caps.media_backend == "mpris"
        assert caps.backlight_max_brightness == 937

    def test_amixer_only(self, tmp_path):
        caps = _probe(tmp_path, tools=("amixer",))
        assert caps.volume == ("amixer",)
        assert caps.mic == ("amixer",)
        assert caps.brightness == ()

    def test_no_backlight_no_tool(self, tmp_path):
        caps = _probe(tmp_path, tools=("busctl",))
        assert not caps.is_available("brightness")
        assert caps.backlight_device_path is None

    def test_playerctl_is_never_the_state_source(self, tmp_path):
        caps = _probe(tmp_path, tools=("playerctl",))
        assert caps.media == ("playerctl",)
        assert caps.media_backend is None

    def test_probe_failure_marks_everything_unavailable(self, tmp_path):
        with patch("ctrldeck.capabilities._probe_linux", side_effect=RuntimeError("boom")):
            caps = probe_capabilities(DeckConfig(), system="linux", sys_root=tmp_path)
        assert caps == CapabilitySet(platform="linux")


class TestOtherPlatforms:
    def test_unknown_platform(self, tmp_path):
        caps = probe_capabilities(DeckConfig(), system="Darwin", sys_root=tmp_path)
        assert caps.platform == "darwin"
        assert not any(caps.is_available(d) for d in ("volume", "mic", "brightness", "media"))

    def test_windows(self, tmp_path):
        with patch("ctrldeck.capabilities._pycaw_available", return_value=True), \
                patch("ctrldeck.capabilities._ddcci_available", return_value=False), \
                patch("ctrldeck.capabilities._gsmtc_available", return_value=True), \
                patch("ctrldeck.capabilities.find_tool", return_value="C:/pwsh.exe"):
            caps = probe_capabilities(DeckConfig(), system="Windows")
        assert caps.volume == ("pycaw",)
        assert caps.brightness == ("wmi",)
        assert caps.media == ("gsmtc",)
        assert caps.powershell_path == "C:/pwsh.exe"

    def test_unknown_domain(self):
        with pytest.raises(KeyError):
            CapabilitySet().mechanisms("keyboard")

    def test_to_dict(self):
        data = CapabilitySet(platform="linux", volume=("pactl",)).to_dict()
        assert data["volume"] == ["pactl"]
        assert data["mixer_tool"] == "pactl"
