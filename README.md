# ylineworker

`ylineworker` is the worker side of YLine, a distributed task scheduling
system. A worker runs on each machine and:

- collects machine information: host name, operating system, release,
  version and architecture, and the host CPU as a compute device (model name,
  logical core count, total memory);
- keeps a persistent worker UUID in the user's application data directory
  (`%APPDATA%` on Windows, `$HOME` on Linux) under `YLineWorker/Yworker.uuid`,
  creating it on first start;
- connects to the server's WebSocket at `ws://<ip>:<port>/ws/worker`, sends a
  registration message and then reports CPU and memory usage once a second;
- listens on its own HTTP address, compressing responses and answering with a
  custom 404 page.

Only one worker runs on a machine at a time: the instance lock is a file named
`YLineWorker.lock` in the temporary directory, and a second instance exits
with status 1.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Configuration

By default the worker reads `YLineWorker_Config.toml` from the directory that
holds the running program; `--config PATH` names another file. Every table
below must be present.

```toml
[YLineWorker]
ip = "0.0.0.0"
port = 33393

[worker]
register_secret = "secret"

[YLineServer]
ip = "0.0.0.0"
port = 33383

[middleware]
IntranetIpFilter = false
LocalHostFilter = false

[logger]
level = "debug"   # trace, debug, info, warn, err, critical
```

A missing key, or one of the wrong type, takes the default shown above.
`register_secret` must not be empty. An unknown log level falls back to
`info` with a warning. A missing table, an empty secret or invalid TOML raises
`ylineworker.config.ConfigError`, and the service exits with status 1.

Logs go to the console and to a rotating file
`logs/<machine name>/<YYYY-MM-DD_HH-MM-SS>.log` under the current directory;
each file holds at most 5 MiB and three old files are kept.

## Running

Start the worker service:

```
ylineworker
ylineworker --config /path/to/YLineWorker_Config.toml --lock-dir /path/to/locks
```

It runs until interrupted. Show the terminal window:

```
ylineworker-ui
```

## Library use

```python
from ylineworker.machine_info import get_machine_info
from ylineworker.usage import get_usage_info_cpu
from ylineworker.config import parse_config_text

info = get_machine_info()
print(info.machine_name, info.system_info.os_name)

usage = get_usage_info_cpu()  # samples for about one second; -1.0 marks a failure
print(usage.cpu_usage, usage.memory_usage)
```

Other pieces:

- `ylineworker.sysmutex.SysMutex` — a named cross-process lock
  (`try_lock`, `unlock`, `close`, usable as a context manager).
- `ylineworker.nvml.Nvml` — GPU queries over an NVML backend object that
  offers the calls in `ylineworker.nvml.REQUIRED_CALLS`; failures raise
  `NVMLError`.
- `ylineworker.worker_state.Worker` — worker state and the registration and
  usage messages (`register_json`, `usage_json`, `usage_gpu_json`).
- `ylineworker.dbmate` — `is_dbmate_installed`, `download_dbmate` and
  `run_dbmate` for the dbmate migration tool.
- `ylineworker.timestamp.current_timestamp_str` and
  `ylineworker.logger.create_logger`.

## What it does not do

- No NVML backend is included. The `ylineworker` command therefore never
  reports GPU details; `Nvml` works only with a backend you supply.
- Only the host CPU is reported as a device; GPUs and accelerators are not
  detected.
- The HTTP endpoint has no routes: every request gets the 404 page.
- `IntranetIpFilter` and `LocalHostFilter` are only logged, not enforced.
- Messages from the server are logged and not acted on; no tasks are run.
- A lost server connection is not re-established.
- The terminal window shows a fixed layout with placeholder text, not live
  data.