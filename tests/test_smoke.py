from skc_app.app import create_controller
from skc_app.config import AppConfig
from skc_app.input.controller import ConnectionState


def test_create_controller_starts_disconnected() -> None:
    controller = create_controller(AppConfig(read_timeout_ms=250))
    assert controller.connection_state is ConnectionState.DISCONNECTED
    assert controller.layer is None
