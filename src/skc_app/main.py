# Use absolute import so it works when frozen as a script entrypoint.
from skc_app.app import create_application, create_tray, load_config


def main() -> int:
    app = create_application()
    config = load_config()
    tray = create_tray(config)
    tray.start()
    app.aboutToQuit.connect(tray.shutdown)
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
