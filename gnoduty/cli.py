import argparse
import json
import logging
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

from prometheus_client import start_http_server
from pythonjsonlogger import jsonlogger

from gnoduty.config import load_config
from gnoduty.dashboard import DashboardChannel, StatusBoard
from gnoduty.monitor import MonitorManager

logger = logging.getLogger("gnoduty")


def setup_logging(log_format="text", log_level="INFO"):
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        fmt = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(fmt)
    # Remove all handlers associated with the root logger object.
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)
    root_logger.addHandler(handler)


def make_status_handler(board: StatusBoard):
    class StatusHandler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path == "/healthz":
                self._send(200, "text/plain", b"ok")
            elif self.path == "/status":
                body = json.dumps([s.to_dict() for s in board.snapshots()]).encode("utf-8")
                self._send(200, "application/json", body)
            else:
                self.send_response(404)
                self.end_headers()

        def _send(self, code, content_type, body):
            self.send_response(code)
            self.send_header("Content-type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            return  # Silence default logging

    return StatusHandler


def run_status_server(board: StatusBoard, port=8001):
    server = HTTPServer(("0.0.0.0", port), make_status_handler(board))
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


def main(argv=None):
    parser = argparse.ArgumentParser(description="Gnoland validator signing monitor")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--healthz-port", type=int, default=8001)
    args = parser.parse_args(argv)
    config = load_config(args.config)
    setup_logging(config["log_format"], config["log_level"])
    logger.info(f"Loaded config for chains: {', '.join(config['chains'])}")

    start_http_server(args.port)
    logger.info(f"Metrics running on :{args.port}/metrics")

    channel = DashboardChannel()
    board = StatusBoard(channel)
    board.start()
    server = run_status_server(board, args.healthz_port)
    logger.info(f"Health and status running on :{args.healthz_port}/healthz, /status")

    manager = MonitorManager(config, channel)
    try:
        manager.start()
        # Keep main thread alive
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        manager.stop()
        board.stop()
        server.shutdown()
        logger.info("Monitoring stopped")
    return 0
