"""
Brief: Tests for the dnsfilter.main entry point and PID file helpers.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import threading

import pytest

import dnsfilter.main as main_mod
from dnsfilter.main import create_pid_file, main, remove_pid_file


def _write_config(tmp_path, body=""):
    log_path = tmp_path / "filter-dns.log"
    path = tmp_path / "config.yaml"
    path.write_text(
        "host: 127.0.0.1\n"
        "port: 0\n"
        "forwarders:\n"
        "  - host: 9.9.9.9\n"
        "logging:\n"
        "  stderr: false\n"
        f"  file: {log_path}\n" + body,
        encoding="utf-8",
    )
    return path


class _DummyServer:
    """
    Brief: Stand-in for DNSServer that records its lifecycle.

    Inputs:
      - host, port, request_handler: as passed by main()

    Outputs:
      - _DummyServer instance
    """

    instances = []

    def __init__(self, host, port, request_handler):
        self.host = host
        self.port = port
        self.request_handler = request_handler
        self.stopped = threading.Event()
        self.served = False
        _DummyServer.instances.append(self)

    def serve_forever(self):
        self.served = True

    def stop(self):
        self.stopped.set()


@pytest.fixture
def dummy_server(monkeypatch):
    _DummyServer.instances = []
    monkeypatch.setattr(main_mod, "DNSServer", _DummyServer)
    return _DummyServer


def test_create_and_remove_pid_file(tmp_path):
    pid_path = tmp_path / "dns-filter.pid"
    create_pid_file(str(pid_path))
    assert pid_path.read_text(encoding="ascii") == str(os.getpid())

    remove_pid_file(str(pid_path))
    assert not pid_path.exists()
    # Removing again is harmless.
    remove_pid_file(str(pid_path))


def test_create_pid_file_unwritable_location(tmp_path):
    with pytest.raises(OSError):
        create_pid_file(str(tmp_path / "missing" / "dns-filter.pid"))


def test_main_missing_config_exits_1(tmp_path, capsys):
    rc = main(["-c", str(tmp_path / "nope.yaml"), "--pid", str(tmp_path / "p.pid")])

    assert rc == 1
    assert "Error processing configuration" in capsys.readouterr().out
    assert not (tmp_path / "p.pid").exists()


def test_main_invalid_filter_exits_1(tmp_path, capsys):
    """
    Brief: A typed filter without a matching mode aborts startup.

    Inputs:
      - tmp_path: scratch directory for config and pid file

    Outputs:
      - None
    """
    cfg = _write_config(
        tmp_path, "filters:\n  - host: ads.example.com\n    type: A\n"
    )
    rc = main(["--config", str(cfg), "--pid", str(tmp_path / "p.pid")])

    assert rc == 1
    assert "required matching" in capsys.readouterr().out


def test_main_pid_failure_exits_1(tmp_path, dummy_server):
    cfg = _write_config(tmp_path)
    rc = main(["-c", str(cfg), "--pid", str(tmp_path / "missing" / "p.pid")])

    assert rc == 1
    assert dummy_server.instances == []


def test_main_bind_failure_exits_1_and_removes_pid(tmp_path, monkeypatch):
    def _refuse(host, port, request_handler):
        raise PermissionError("denied")

    monkeypatch.setattr(main_mod, "DNSServer", _refuse)
    cfg = _write_config(tmp_path)
    pid_path = tmp_path / "p.pid"

    assert main(["-c", str(cfg), "--pid", str(pid_path)]) == 1
    assert not pid_path.exists()


def test_main_serves_and_cleans_up(tmp_path, dummy_server):
    """
    Brief: main() wires the server from config and removes the PID file on exit.

    Inputs:
      - tmp_path: scratch directory
      - dummy_server: DNSServer replacement whose loop returns immediately

    Outputs:
      - None
    """
    cfg = _write_config(tmp_path, "filters:\n  - host: ads.example.com\n")
    pid_path = tmp_path / "p.pid"
    before = signal.getsignal(signal.SIGTERM)

    rc = main(["-c", str(cfg), "--pid", str(pid_path)])

    assert rc == 0
    (server,) = dummy_server.instances
    assert (server.host, server.port) == ("127.0.0.1", 0)
    assert server.served
    assert server.stopped.is_set()
    assert len(server.request_handler.pipeline.filters) == 1
    assert [str(e) for e in server.request_handler.pipeline.pool.endpoints] == [
        "9.9.9.9:53/udp"
    ]
    assert not pid_path.exists()
    assert signal.getsignal(signal.SIGTERM) == before

    log_text = (tmp_path / "filter-dns.log").read_text(encoding="utf-8")
    assert "Forwarders: [9.9.9.9:53/udp]" in log_text
    assert "Startup Completed" in log_text


def test_main_stops_on_signal(tmp_path, monkeypatch):
    """
    Brief: SIGTERM sets the shutdown event and main() exits 0.

    Inputs:
      - tmp_path: scratch directory
      - monkeypatch: installs a server whose loop blocks until stopped

    Outputs:
      - None
    """
    servers = []

    class _BlockingServer(_DummyServer):
        def serve_forever(self):
            self.served = True
            self.stopped.wait(5.0)

    monkeypatch.setattr(main_mod, "DNSServer", _BlockingServer)
    _DummyServer.instances = servers

    before = signal.getsignal(signal.SIGTERM)
    installed = threading.Event()

    def _send_term():
        # Wait until main() has installed its handler.
        for _ in range(200):
            if signal.getsignal(signal.SIGTERM) is not before:
                installed.set()
                break
            threading.Event().wait(0.02)
        if installed.is_set():
            os.kill(os.getpid(), signal.SIGTERM)

    cfg = _write_config(tmp_path)
    pid_path = tmp_path / "p.pid"
    t = threading.Thread(target=_send_term, daemon=True)
    t.start()

    rc = main(["-c", str(cfg), "--pid", str(pid_path)])
    t.join(2.0)

    assert installed.is_set()
    assert rc == 0
    assert servers and servers[0].stopped.is_set()
    assert not pid_path.exists()
    log_text = (tmp_path / "filter-dns.log").read_text(encoding="utf-8")
    assert f"Signal ({int(signal.SIGTERM)}) received, stopping" in log_text


def test_main_reports_listener_crash(tmp_path, monkeypatch):
    class _CrashingServer(_DummyServer):
        def serve_forever(self):
            raise OSError("socket closed")

    monkeypatch.setattr(main_mod, "DNSServer", _CrashingServer)
    cfg = _write_config(tmp_path)

    assert main(["-c", str(cfg), "--pid", str(tmp_path / "p.pid")]) == 1
    assert not (tmp_path / "p.pid").exists()
