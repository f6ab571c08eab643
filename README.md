# ctgmonitor

ctgmonitor is a backend service for cardiotocography (CTG) monitoring, built on aiohttp. It:

- accepts authenticated WebSocket connections from CTG sensors,
- stores each reading in an SQLite database, grouped by examination,
- forwards each stored reading to an ML service over a WebSocket (`ws://<ml.addr>:<ml.port>/ws/ctg`), reconnecting every 5 seconds when that connection is down,
- broadcasts every message received from the ML service to all connected frontend clients,
- switches sensor devices on and off through their HTTP control API (`GET http://<ip>/api/on` and `/api/off`).

## Installation

```
pip install .
```

With the test tools:

```
pip install .[test]
```

## Running

```
ctgmonitor -c config/config.yaml
```

`-c` is the path to the YAML configuration file and defaults to `config/config.yaml`. The command exits with status 1 if the configuration cannot be read or the database cannot be opened or migrated.

## Configuration

```yaml
env: dev
server:
  addr: 0.0.0.0
  port: "8080"
  read_timeout: 10s
  write_timeout: 10s
sensors:
  handshake_timeout: 5s
  entities:
    - uuid: sensor-one
      token: token
      ip: 192.168.0.10
    - uuid: sensor-two
      token: token
      ip: 192.168.0.11
db:
  driver: sqlite
  dsn: ctg.db
ml:
  addr: localhost
  port: "8000"
```

- Durations take forms such as `500ms`, `10s`, `1m30s` or `2h` (units `ns`, `us`, `ms`, `s`, `m`, `h`). A bare integer is read as nanoseconds. `ctgmonitor.config.parse_duration` returns the value in seconds.
- `server.addr` and `server.port` set where the server listens. An empty address listens on all interfaces. `read_timeout` and `write_timeout` are read into the configuration, but the server does not apply them.
- `sensors.handshake_timeout` limits the WebSocket handshake for sensors. Zero means no limit.
- `db.driver` must be `sqlite` or `sqlite3`. `db.dsn` is a file path, or a `file:` URI.

Environment variables override some values:

| Variable                              | Overrides      |
|---------------------------------------|----------------|
| `SERVER_ADDR` (or `SERVER_SERVER_ADDR`) | `server.addr` |
| `SERVER_PORT` (or `SERVER_SERVER_PORT`) | `server.port` |
| `ML_ADDR` (or `ML_ML_ADDR`)           | `ml.addr`      |
| `ML_PORT` (or `ML_ML_PORT`)           | `ml.port`      |
| `SENSOR_IP_1`, `SENSOR_IP_2`, …       | `ip` of the first, second, … sensor entity (only when non-empty) |

## HTTP API

| Method | Path                     | Response                                                          |
|--------|--------------------------|-------------------------------------------------------------------|
| GET    | `/api/health`            | `{"timestamp": ..., "service": "backend_main"}`                   |
| GET    | `/api/sensors/start`     | Switches on the next configured sensor. Returns 400 when all sensors are already started or the sensor fails. |
| GET    | `/api/sensors/stop`      | Switches off every sensor started so far.                         |
| GET    | `/api/info/doctor?id=N`  | The doctor record. Returns 400 for a missing or invalid id and 404 when no record is found. |
| GET    | `/api/info/medical?id=N` | The medical institution record, with the same error rules.       |

Errors come back as JSON: `{"error": "..."}`.

## WebSockets

`/ws/sensor?sensor_id=<uuid>` is the sensor endpoint. The request must carry an `X-Auth-Sensor-Token` header that holds the token configured for that sensor. Otherwise the server answers:

- 400 when `sensor_id` is missing,
- 403 when the sensor is unknown,
- 401 when the token is wrong.

Each message is JSON, for example:

```json
{"sensorID": "sensor-one", "secFromStart": 12.5,
 "data": {"BPMChild": 140, "uterus": 20, "spasms": 0}}
```

Readings are stored under the connection's `sensor_id`. Messages that are not valid JSON are logged and skipped. When a sensor connects and no examination is open, a new examination is created. When the last sensor disconnects, the open examination is closed.

`/ws/` (also `/ws`) is the frontend endpoint. Clients receive every message from the ML service. The broadcast queue holds 256 messages. Messages that arrive while the queue is full are dropped.

## Database tables and migrations

The package contains no schema and no migration files. The tables `examinations`, `ctg`, `doctors` and `medicals` must be created by migrations that you supply:

- Put SQL files named `<version>_<name>.sql`, each with a `-- +goose Up` section, in a `migrations` directory inside the `ctgmonitor` package, or pass `migrations_dir=` to `Server`.
- On start, `ctgmonitor.database.migrate` applies the versions that are still pending and records them in `goose_db_version`.
- If the default directory does not exist, migration is skipped and a warning is logged.

## Using it as a library

```python
from ctgmonitor.config import read_config
from ctgmonitor.server import Server

config = read_config("config/config.yaml")
server = Server(config, migrations_dir="migrations")
app = server.create_app()   # an aiohttp.web.Application
```

Other parts can be used on their own:

- `ctgmonitor.database` provides `connect` and `Database`.
- `ctgmonitor.repository` provides `ExamRepository` and `InfoRepository`, which raise `RepositoryError` and `NotFoundError`.
- `ctgmonitor.sensors_usecase.SensorsUseCase` switches sensors on and off.
- `ctgmonitor.entities.MessageData.from_json` parses sensor messages.