# samaritan

Pure-Python building blocks for a TCP and Redis proxy. The package has no
third-party dependencies.

## Modules

- `samaritan.bufreader`: a buffered `Reader` over any object with a
  `read(n)` method, offering `read`, `read_byte`, `peek_byte`, `read_slice`,
  `read_bytes` and `read_full`. The first error it meets (end of stream as
  `EOFError`, or an `OSError`) is raised again on every later call.
  `read_slice` raises `BufferFullError` when no delimiter fits in the buffer.
  `SliceAllocator` hands out slices carved from shared chunks and counts its
  allocations in `allocs`.
- `samaritan.resp`: the Redis serialization protocol. `RespValue` (with
  `type`, `text`, `integer` and `array`; `None` text or array is the null
  value), `RespType`, a streaming `Decoder` and a buffered `Encoder` (call
  `flush` to write out), plus `encode_value`, `parse_int` and `format_int`.
  Lines that do not start with a type byte are decoded as inline commands,
  split on spaces into an array of bulk strings. Malformed input raises
  `ProtocolError`.
- `samaritan.hc`: backend health checkers. Each `Checker.check(addr, timeout)`
  takes an address such as `"127.0.0.1:6379"` and a timeout in seconds,
  returns `None` when the backend is healthy and raises otherwise.
  - `samaritan.hc.atcp`: scripted checks. `Checker` takes pairs of
    (send, expect) payloads. Payloads are quoted string literals, such as
    `"PING\r\n"`, or quoted hex prefixed with `b`, such as `b"50494e47"`;
    `decode_payload` interprets them. `TCPSend` and `TCPExpect` are the single
    actions, and `BufferedConn` is the buffered connection they share.
    `send_bytes_with_deadline` and `expect_bytes_with_deadline` take a
    `time.monotonic()` deadline. Failures raise `CheckTimeoutError` or
    `UnexpectedResponseError` (both `HealthCheckError`); bad payloads raise
    `PayloadError`.
  - `samaritan.hc.mysql`: logs in as the given user with a bare handshake
    response followed by `COM_QUIT`, and expects a greeting and an OK packet.
    `new_health_check_packet`, `build_packet`, `HandshakeResponse`, `Header`
    and `read_header` build and parse the packets.
  - `samaritan.hc.redis_checker`: sends `PING` and expects `+PONG`.
- `samaritan.lb`: `RoundRobinBalancer`, `RandomBalancer` and
  `LeastConnBalancer`, chosen with `new_balancer(LoadBalancePolicy...)`
  (round robin by default). `pick_host(hosts)` returns `None` for an empty
  list. Hosts given to `LeastConnBalancer` need a `conn_count` attribute. The
  random balancers accept a `rand_int` callable for repeatable choices.
- `samaritan.log`: `PrefixLogger`, which puts a prefix in front of every
  %-style message it logs through the standard `logging` module; `fatal`
  logs at critical level and then exits with status 1.
- `samaritan.netconn`: `Conn`, a socket wrapper with `read_timeout` and
  `write_timeout` (seconds), optional `ConnStats` byte and lifetime counters,
  `on_bytes_in`/`on_bytes_out` callbacks, `close_read`, `close_write` and an
  idempotent `close`. `dial`, `wrap`, `set_tcp_user_timeout` and
  `get_tcp_user_timeout` (returns -1 where the platform lacks the option).
- `samaritan.compressor`: a registry of named `Compressor` implementations
  (`register`, `unregister`, `get`, `new_reader`, `new_writer`). Registering
  a name twice raises `ValueError`; using an unknown name raises
  `UnsupportedAlgorithmError`.

## Examples

```python
import io
from samaritan.resp import Decoder, encode_value

dec = Decoder(io.BytesIO(b"*2\r\n$3\r\nGET\r\n$3\r\nkey\r\n"), 8192)
value = dec.decode()
assert encode_value(value) == b"*2\r\n$3\r\nGET\r\n$3\r\nkey\r\n"
```

```python
from samaritan.hc.atcp import Checker

checker = Checker([(b'"PING\\r\\n"', b'"+PONG"')])
checker.check("127.0.0.1:6379", 1.0)  # raises on failure
```

```python
from samaritan.lb import LoadBalancePolicy, new_balancer

balancer = new_balancer(LoadBalancePolicy.ROUND_ROBIN)
balancer.pick_host(["a", "b", "c"])  # "b": the first pick advances the index
```

## What the package does not do

- It does not listen for or forward traffic: there is no proxy server, no
  listener and no command to run.
- It has no plain TCP connect checker and no monitor that runs checks on a
  schedule or marks hosts healthy or unhealthy.
- The compressor registry starts empty; no compression algorithm is
  registered by the package.

## Tests

Install with the `test` extra and run `pytest`.