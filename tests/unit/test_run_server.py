from unittest.mock import MagicMock, patch

import run_server


def test_main_runs_socketio_and_shuts_down():
    app = MagicMock()
    with patch.object(run_server, "create_app", return_value=app) as create_app, patch.object(
        run_server.socketio, "run"
    ) as run:
        run_server.main(["--host", "127.0.0.1", "--port", "9001", "--seed-demo"])

    create_app.assert_called_once_with({"seed_demo_devices": True}, bootstrap_runtime=True)
    assert run.call_args.kwargs["host"] == "127.0.0.1"
    assert run.call_args.kwargs["port"] == 9001
    app.config.__getitem__.return_value.shutdown.assert_called_once()


def test_main_shuts_down_after_interrupt():
    app = MagicMock()
    with patch.object(run_server, "create_app", return_value=app), patch.object(
        run_server.socketio, "run", side_effect=KeyboardInterrupt
    ):
        run_server.main([])

    app.config.__getitem__.return_value.shutdown.assert_called_once()
