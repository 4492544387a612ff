import sys
import time

import pytest

from livescribe.input.sources import CommandBackend

SAMPLE_RATE = 16000

# Synthetic capture process. The device id is a comma-separated program:
#   tone=<s>     constant 0.25 for <s> seconds
#   silence=<s>  zeros for <s> seconds
#   ramp=<n>     the values 0, 1, ..., n-1
#   split=<n>    like ramp, written 3 bytes at a time
#   exit         exit after writing instead of waiting to be killed
SOURCE_SCRIPT = r"""
import sys, time
import numpy as np

out = sys.stdout.buffer
linger = True
for part in sys.argv[1].split(","):
    kind, _, value = part.partition("=")
    if kind == "tone":
        out.write(np.full(int(float(value) * 16000), 0.25, dtype="<f4").tobytes())
    elif kind == "silence":
        out.write(np.zeros(int(float(value) * 16000), dtype="<f4").tobytes())
    elif kind == "ramp":
        out.write(np.arange(int(value), dtype="<f4").tobytes())
    elif kind == "split":
        data = np.arange(int(value), dtype="<f4").tobytes()
        for i in range(0, len(data), 3):
            out.write(data[i:i + 3])
            out.flush()
    elif kind == "exit":
        linger = False
    out.flush()
if linger:
    time.sleep(60)
"""


class RecordingBackend(CommandBackend):
    """Synthetic source backend that remembers every process it spawned.

    The device id "missing" maps to an executable that does not exist.
    """

    def __init__(self):
        super().__init__([sys.executable, "-c", SOURCE_SCRIPT, "{device}"], name="synthetic")
        self.processes = []

    def command_for(self, device_id):
        if device_id == "missing":
            return ["/nonexistent/livescribe-source"]
        return super().command_for(device_id)

    def start(self, device_id):
        process = super().start(device_id)
        self.processes.append(process)
        return process


def wait_for(predicate, timeout=10.0, interval=0.02):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def backend():
    backend = RecordingBackend()
    yield backend
    for process in backend.processes:
        if process.poll() is None:
            process.kill()
            process.wait()
