from __future__ import annotations

from raidpanel.adapters.storage_local import StorageLocal
from raidpanel.adapters.storage_rest import HttpHealthProbe, StorageRestAdapter
from raidpanel.app.controller import AppController
from raidpanel.domain.entities import AccessMode, ClientLocation
from raidpanel.tests.fakes import FakeChannelFactory, FakeHealth, ManualScheduler
from raidpanel.viewmodels.settings_vm import SettingsVM


def _controller(tmp_path, **settings) -> AppController:
    vm = SettingsVM()
    vm.apply_dict(settings)
    return AppController(
        vm,
        StorageLocal(root_dir=str(tmp_path)),
        channel_factory=FakeChannelFactory(),
        health=FakeHealth(),
    )


def test_builds_assistant_bound_to_page_location(tmp_path) -> None:
    controller = _controller(tmp_path, array_device="md1", status_poll_ms=2500, api_token="tok")

    assistant = controller.build_storage_assistant(
        ClientLocation.from_url("http://ryvie.local/"),
        scheduler=ManualScheduler(),
    )

    assert assistant.context.get_current() is AccessMode.PRIVATE
    assert assistant.executor.array_id == "/dev/md1"
    assert assistant.planner.array_id == "/dev/md1"
    assert assistant.reader.poll_ms == 2500
    adapter = assistant.executor.storage
    assert isinstance(adapter, StorageRestAdapter)
    assert adapter.base_url == "http://ryvie.local"
    assert adapter.session.api_token == "tok"
    assert not assistant.mounted


def test_adapter_url_follows_access_mode(tmp_path) -> None:
    controller = _controller(tmp_path, backend_host="82.1.2.3")
    assistant = controller.build_storage_assistant(
        ClientLocation.from_url("http://192.168.1.5:8080/"),
        scheduler=ManualScheduler(),
    )

    assistant.context.set_mode(AccessMode.PUBLIC)

    assert assistant.executor.storage.base_url == "http://82.1.2.3:3002"
    assert assistant.channels.url_for(AccessMode.PRIVATE) == "http://ryvie.local:3002"


def test_client_state_is_written_per_origin(tmp_path) -> None:
    controller = _controller(tmp_path)

    controller.build_storage_assistant(
        ClientLocation.from_url("https://alice.ryvie.fr/"),
        scheduler=ManualScheduler(),
    )

    assert StorageLocal(str(tmp_path), "alice.ryvie.fr").get_item("accessMode") == "public"
    assert StorageLocal(str(tmp_path), "ryvie.local").get_item("accessMode") is None


def test_health_probe_is_built_lazily_and_reset(tmp_path) -> None:
    vm = SettingsVM()
    controller = AppController(vm, StorageLocal(root_dir=str(tmp_path)))

    first = controller.health
    assert isinstance(first, HttpHealthProbe)
    assert controller.health is first

    controller.reset()
    assert controller.health is not first
