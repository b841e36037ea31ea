# lima

Building blocks for the host and guest agents of Linux virtual machines.
The agents talk HTTP over Unix sockets; this package provides the data
types, the servers and clients for those APIs, a parser for the kernel's
TCP socket tables, a follower for the host agent's event log, and a
downloader with caching and digest checks. It uses only the standard
library.

## Modules

- `lima.procnettcp`: parse `/proc/net/tcp` and `/proc/net/tcp6`.
  `parse(stream, kind)` takes the lines of a table and returns `Entry`
  records (`kind`, `ip`, `port`, `state`); `parse_address("0100007F:0050")`
  returns `(IPv4Address('127.0.0.1'), 80)`; `parse_files()` reads both
  tables, skipping any that does not exist. `Kind` and `State`
  (`ESTABLISHED`, `LISTEN`) name the table kinds and socket states.
- `lima.guestapi`: the `IPPort`, `Info` and `Event` records of the guest
  agent API, each with `to_dict()` and `from_dict()` for its JSON form.
- `lima.httpclient`: `UnixSocketClient(socket_path, timeout=None)`, whose
  `get(path)` sends a GET over the Unix socket and raises `HTTPStatusError`
  for a non-2XX response; `check_successful` and `read_at_most` are the
  checks it relies on.
- `lima.guestagent_server`: `GuestAgentServer(socket_path, agent)` serves
  `GET /v1/info` and `GET /v1/events` (newline-delimited JSON) on a Unix
  socket. The agent is any object with `info()` returning an `Info` and
  `events(stop)` yielding `Event`s until the `threading.Event` *stop* is
  set. `serve_forever()` runs the server; `shutdown()` stops it, ends open
  event streams and removes the socket.
- `lima.guestagent_client`: `GuestAgentClient(socket_path)` with `info()`
  and `events(on_event)`.
- `lima.hostagent_api`: `HostInfo`, `HostAgentServer(socket_path, agent)`
  serving `GET /v1/info`, and `HostAgentClient(socket_path)`.
- `lima.hostevents`: the host agent's `Status` and `Event` records, and
  `watch(stdout_path, stderr_path, begin, on_event, timeout=None)`, which
  follows the agent's stdout for JSON events and passes them to
  `on_event` until it returns `True` (then `watch` returns `True`) or the
  timeout passes (then it returns `False`). JSON log lines on stderr are
  passed on to the `logging` module.
- `lima.downloader`: `download(local, remote, cache_dir=None,
  expected_digest="")` returns a `Result` with a `Status` of
  `DOWNLOADED`, `SKIPPED` (the local file already exists) or
  `USED_CACHE`. Remote files are cached under
  `<cache_dir>/download/by-url-sha256/<sha256 of the URL>/`; an empty
  `local` means caching only. Digests look like `sha256:<hex>`
  (`sha384` and `sha512` also work). `default_cache_dir()`, `is_local()`
  and `canonical_local_path()` are public helpers.
- `lima.startutil`: `validate_identifier`, `arg_seems_http_url`,
  `arg_seems_file_url`, `arg_seems_yaml_path`, `inst_name_from_url`,
  `inst_name_from_yaml_path` and `read_at_maximum`, for turning a name,
  YAML path or URL into an instance name.
- `lima.listutil`: `instance_matches(arg, instances)` and
  `bytes_size(size)`, e.g. `bytes_size(4 * 1024**3) == "4GiB"`.

## Installation

```
pip install .
```

## Examples

List the listening TCP sockets of this machine:

```python
from lima.procnettcp import State, parse_files

for entry in parse_files():
    if entry.state == State.LISTEN:
        print(entry.kind.value, entry.ip, entry.port)
```

Serve a guest agent API and query it:

```python
import threading
from lima.guestapi import Info, IPPort
from lima.guestagent_client import GuestAgentClient
from lima.guestagent_server import GuestAgentServer

class Agent:
    def info(self):
        return Info(local_ports=[IPPort(port=8080)])

    def events(self, stop):
        stop.wait()
        return iter(())

server = GuestAgentServer("/tmp/agent.sock", Agent())
threading.Thread(target=server.serve_forever, daemon=True).start()
print(GuestAgentClient("/tmp/agent.sock").info())
server.shutdown()
```

Download a file, verify its digest and keep a cached copy:

```python
from lima.downloader import default_cache_dir, download

result = download(
    "/tmp/image.qcow2",
    "https://example.com/image.qcow2",
    cache_dir=default_cache_dir(),
    expected_digest="sha256:" + "0" * 64,
)
print(result.status)
```

Derive an instance name:

```python
from lima.startutil import inst_name_from_url

print(inst_name_from_url("https://example.com/templates/docker.yaml"))  # docker
```

## What this package does not do

It has no command-line tool and does not start or manage virtual
machines. It ships no guest agent that watches ports on its own: the
guest agent server serves whatever agent object it is given. It does not
set up SSH port forwards, read iptables rules, run a DNS server, or print
SSH settings for an instance.

## Running the tests

```
pip install ".[test]"
pytest
```