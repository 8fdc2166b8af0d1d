"""Print the samples a device streams to udp://HOST:PORT, one CSV row each.

Run:
  python scripts/collect.py --port 9999
  streamdevice run --device-id dev-1 --endpoint udp://127.0.0.1:9999
"""
from __future__ import annotations

import argparse
import json
import socket
from typing import Dict, Iterator


def udp_json_stream(host: str, port: int) -> Iterator[Dict[str, object]]:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind((host, port))
    sock.settimeout(1.0)
    while True:
        try:
            data, _ = sock.recvfrom(65535)
        except socket.timeout:
            continue
        try:
            yield json.loads(data.decode("utf-8", errors="ignore"))
        except json.JSONDecodeError:
            continue


def main() -> None:
    parser = argparse.ArgumentParser(description="Collect streamed samples")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=9999)
    args = parser.parse_args()

    print("ts,device_id,path,value")
    try:
        for msg in udp_json_stream(args.host, args.port):
            print(f"{msg.get('ts', 0.0):.3f},{msg.get('device_id')},{msg.get('path')},{msg.get('value')}")
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
