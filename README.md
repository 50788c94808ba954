# zeroframe

A small toolkit of building blocks for backend services, using only the
standard library:

- **Query building** (`zeroframe.query`, `zeroframe.operation`,
  `zeroframe.postgres`, `zeroframe.core`) – turn a JSON query description
  (columns, nested conditions, ordering, paging) into MySQL or PostgreSQL
  `SELECT` and `count` statements, run them through a DB-API connection and
  get rows back as dictionaries.
- **Zero v1 frames** (`zeroframe.v1message`) – a binary message format
  (`zero` … `ZERO`) with lengths, a 32-character message id and a
  CRC-16/AUG-CCITT checksum.
- **MQTT** (`zeroframe.mqtt`, `zeroframe.mqttserver`) – parsing and building
  MQTT control packets, and a TCP server whose connections answer CONNECT,
  SUBSCRIBE, PUBLISH, PUBREC and PINGREQ and keep a map of topic subscribers.
- **Socket servers** (`zeroframe.sockets`) – TCP, Unix-socket and UDP servers
  with authorisation deadlines, heartbeat checks and pluggable packet checkers.
- **Notifications** (`zeroframe.notify`) – a JSON notification envelope.
- **HTTP helpers** (`zeroframe.webutil`) – the `{code, message, datas,
  expands}` response body, request and query decoding, URI pattern parameters
  and a prefix-routed WSGI application.

## Column naming

```python
from zeroframe.query import hump_to_line, line_to_hump

hump_to_line("userID")      # "user_id"
line_to_hump("user_name")   # "userName"
```

In the MySQL dialect a column starting with `@` is passed through verbatim
(with the `@` removed), and a dotted condition column such as `profile.city`
becomes a JSON path lookup (`profile ->> "$.city"`).

## Building and running queries

```python
from zeroframe.query import Query
from zeroframe.operation import MysqlQueryOperation

query = Query.from_dict({
    "columns": ["id", "userName"],
    "condition": {
        "symbol": "AND",
        "relation": [
            {"symbol": "EQ", "column": "status", "value": "1"},
            {"symbol": "LIKE", "column": "userName", "value": "%ann%"},
        ],
    },
    "orderby": [{"column": "createTime", "seq": "DESC"}],
    "limit": {"start": 0, "length": 20},
})

operation = MysqlQueryOperation(query, "users")
operation.build(connection)           # anything with a DB-API cursor()
print(operation.query_sql())
print(operation.count_sql())
rows, expands = operation.execute()   # list of dicts, {"start", "length", "total"}
```

Comparison symbols are `EQ`, `NEQ`, `GT`, `LT`, `EQGT`, `EQLT` and `LIKE`;
relations are `AND` and `OR`. Unknown names raise `QueryError`. Page length
is capped at 5000 rows; without a length a single row is returned.
`append_condition` ANDs raw SQL onto the built `WHERE` clause, and
`add_distinct_id` with `add_filter_table_name` switch to a query over distinct
ids of a filter table.

`PostgresQueryOperation` in `zeroframe.postgres` does the same with
double-quoted columns and `OFFSET … LIMIT …`.

`CoreProcessor` offers `execute`, `query`, `parse_rows` and
`database_datetime` for running statements directly.

## Zero v1 frames

```python
from zeroframe.v1message import MessageType, V1Message

message = V1Message.new(MessageType.HEARTBEAT, b"payload")
message.complete()                # fills in lengths and checksum
wire = message.to_bytes()

received = V1Message.parse(wire)
received.check()                  # raises MessageCheckError on a bad frame
reply = V1Message.ack(MessageType.BEATACK, received.message_id)
```

`crc16_aug_ccitt` and `bytes_string` (a hex dump) are available on their own.

## MQTT packets

```python
from zeroframe.mqtt import MqttMessage, encode_remaining_length, decode_remaining_length

encode_remaining_length(321)              # b"\xc1\x02"
decode_remaining_length(b"\xc1\x02")      # 321

packet = MqttMessage.puback(7).to_bytes()
parsed = MqttMessage.parse(packet)
parsed.variable_header.identifier         # 7
```

`MqttServer(address, auth_wait_seconds, heartbeat_seconds,
heartbeat_check_interval, buffer_size)` accepts clients on `host:port`;
`run_server()` blocks until `shutdown()`. `subscribers(topic)` lists the
connections subscribed to a topic. Give a connection an
`MqttMessageListener` with `add_listener` to receive its PUBLISH packets.

## Socket servers

`TCPServer.run_server()` listens and blocks; `IPCServer.run_server()` binds a
Unix socket path (replacing what was there) and accepts in the background;
`UDPServer.run_server()` reads datagrams in the background and hands each
checked datagram to a processor's `on_message`. Connections that are not
authorised within `auth_wait_seconds` are closed, and authorised connections
without a heartbeat for `heartbeat_seconds` are closed at each check.
Subclass `SocketConnect` and pass it as `connect_factory` to handle messages.

## Notifications

```python
from zeroframe.notify import NotifyMessage

note = NotifyMessage.new("devices", "device.online", {"id": "device-example"})
data = note.to_json()
same = NotifyMessage.from_json(data)
```

## HTTP helpers

```python
from zeroframe.webutil import build_app, handle, make_uri, response_body, uri_params

make_uri("api", "users", "")                                    # "/api/users"
uri_params("/api/users/42/orders/7", "/users/:uid/orders/:oid")
# {"uid": "42", "oid": "7"}
body = response_body(200, "ok", [], {})

app = build_app("/service", handle(my_wsgi_handler, "users", "/"))
```

Paths ending in `/` serve their whole subtree; others match exactly.
`run_http_server(host, port, prefix, *executors)` serves the application with
the standard library's WSGI server.

## What the package does not do

- It has no TCP client and no server or client that carries Zero v1 frames
  over a connection; `zeroframe.v1message` only builds, parses and verifies
  frames.
- It has no message-queue client: `NotifyMessage` only encodes and decodes
  the JSON envelope.
- It does not insert, update or delete objects automatically; `XsacEvent`
  only names the trigger moments.

## Tests

The test suite uses pytest and is declared in the `test` extra.