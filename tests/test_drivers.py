"""Tests for the device directory, device drivers and room sensors."""

import json

import httpx
import pytest

from homerules.domain.errors import DeviceNotFound
from homerules.domain.models import DeviceState
from homerules.drivers import device_http
from homerules.drivers.device_http import HttpDeviceControl
from homerules.drivers.device_sim import SimulatedDeviceControl
from homerules.drivers.directory import StaticDeviceDirectory, load_home_config
from homerules.sensors.http_room_sensor import HttpRoomSensor
from homerules.sensors.simulated_room_sensor import SimulatedRoomSensor


class TestDirectory:
    def test_resolve_case_insensitive(self, directory):
        target = directory.resolve("Living Room", "ac")
        assert target.device_id == "ac-1"
        assert target.host == "10.0.0.2"

    def test_missing_device_type(self, directory):
        with pytest.raises(DeviceNotFound):
            directory.resolve("kitchen", "ac")

    def test_missing_room(self, directory):
        with pytest.raises(LookupError):
            directory.resolve("attic", "light")

    def test_from_dict_inherits_room_host(self):
        d = StaticDeviceDirectory.from_dict({
            "rooms": [{"name": "Office", "sensor_host": "10.1.1.1", "devices": [{"type": "Fan", "device_id": 7}]}]
        })
        target = d.resolve("office", "fan")
        assert target.device_id == "7"
        assert target.host == "10.1.1.1"

    def test_load_home_config_file(self, tmp_path):
        path = tmp_path / "home.json"
        path.write_text(json.dumps({"rooms": [{"name": "Den", "devices": [{"type": "light", "device_id": "l", "host": "h"}]}]}))
        rooms = load_home_config(str(path))
        assert rooms[0].name == "den"
        assert rooms[0].devices[0].host == "h"

    def test_load_home_config_fallback(self, tmp_path):
        rooms = load_home_config(str(tmp_path / "missing.json"))
        assert rooms and rooms[0].name == "living room"

    def test_bundled_default_config(self):
        names = [r.name for r in load_home_config("")]
        assert "living room" in names and "kitchen" in names


class TestSimulatedControl:
    @pytest.mark.asyncio
    async def test_round_trip_and_failure(self):
        sim = SimulatedDeviceControl()
        assert await sim.get_state("ac-1", "h") is None

        ok = await sim.set_state("ac-1", "h", DeviceState(power=True))
        assert ok.success
        assert await sim.get_state("ac-1", "h") == DeviceState(power=True)

        sim.fail_next()
        bad = await sim.set_state("ac-1", "h", DeviceState(power=False))
        assert not bad.success and bad.status_code == 503
        assert await sim.get_state("ac-1", "h") == DeviceState(power=True)
        assert len(sim.commands) == 2


def patch_transport(monkeypatch, handler):
    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = transport
        return real_client(*args, **kwargs)

    monkeypatch.setattr(device_http.httpx, "AsyncClient", client_factory)


class TestHttpControl:
    @pytest.mark.asyncio
    async def test_set_state_success(self, monkeypatch):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["key"] = request.headers.get("X-Api-Key")
            return httpx.Response(200, json={"ok": True})

        patch_transport(monkeypatch, handler)
        control = HttpDeviceControl(api_key="secret")

        resp = await control.set_state("ac-1", "10.0.0.2:5000", DeviceState(power=True, temperature=23.0, mode="cool"))

        assert resp.success and resp.status_code == 200
        assert seen["url"] == "http://10.0.0.2:5000/api/devices/ac-1/state"
        assert seen["body"] == {"power": True, "temperature": 23.0, "mode": "cool"}
        assert seen["key"] == "secret"

    @pytest.mark.asyncio
    async def test_set_state_rejected(self, monkeypatch):
        patch_transport(monkeypatch, lambda request: httpx.Response(503, json={"message": "offline"}))
        resp = await HttpDeviceControl().set_state("ac-1", "h", DeviceState(power=True))
        assert not resp.success
        assert resp.status_code == 503
        assert resp.message == "offline"

    @pytest.mark.asyncio
    async def test_set_state_transport_error(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        patch_transport(monkeypatch, handler)
        resp = await HttpDeviceControl().set_state("ac-1", "h", DeviceState(power=True))
        assert not resp.success and resp.status_code == 0

    @pytest.mark.asyncio
    async def test_get_state(self, monkeypatch):
        patch_transport(monkeypatch, lambda request: httpx.Response(
            200, json={"state": {"power": True, "temperature": 22, "mode": "heat"}}
        ))
        state = await HttpDeviceControl().get_state("ac-1", "http://h")
        assert state == DeviceState(power=True, temperature=22.0, mode="heat")

    @pytest.mark.asyncio
    async def test_get_state_failure_returns_none(self, monkeypatch):
        patch_transport(monkeypatch, lambda request: httpx.Response(500))
        assert await HttpDeviceControl().get_state("ac-1", "h") is None


class TestSimulatedSensor:
    @pytest.mark.asyncio
    async def test_read_fragment(self):
        sensor = SimulatedRoomSensor("kitchen", temperature=21, humidity=None, motion=True)
        assert await sensor.read() == {"temp": {"kitchen": 21.0}, "motion": {"kitchen": True}}

    @pytest.mark.asyncio
    async def test_disabled_sensor_raises(self):
        sensor = SimulatedRoomSensor("kitchen")
        sensor.disable()
        with pytest.raises(RuntimeError):
            await sensor.read()


class TestHttpSensor:
    @pytest.mark.asyncio
    async def test_read_fragment(self, monkeypatch):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"temperature": 26.5, "humidity": 51, "motion": False})

        patch_transport(monkeypatch, handler)
        sensor = HttpRoomSensor("living room", "10.0.0.2:5000")

        assert await sensor.read() == {
            "temp": {"living room": 26.5},
            "humidity": {"living room": 51.0},
            "motion": {"living room": False},
        }
        assert seen["url"] == "http://10.0.0.2:5000/api/sensors"

    @pytest.mark.asyncio
    async def test_read_error_propagates(self, monkeypatch):
        patch_transport(monkeypatch, lambda request: httpx.Response(502))
        with pytest.raises(httpx.HTTPStatusError):
            await HttpRoomSensor("kitchen", "h").read()
