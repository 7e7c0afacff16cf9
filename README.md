# khafi

Services and client libraries for a gateway that grants API access in
exchange for a shielded Zcash payment.

The package contains:

- **Payment backend** – polls a chain node for payments to the gateway's
  address, records each payment under its nullifier in Redis and answers
  payment-status queries over HTTP. The node it polls is a built-in,
  deterministic mock.
- **Nullifier checking** – an atomic Redis check-and-set that reports whether
  a nullifier is seen for the first time, so a payment can only be spent once.
- **Proof generation service** – an HTTP service that loads customer guest
  programs listed in an image-ID registry and runs a pluggable prover on them.
- **Clients** – async HTTP clients for a Zcash backend and for the image-ID
  registry.

## Installation

```
pip install khafi
```

For running the test suite:

```
pip install "khafi[test]"
pytest
```

A Redis server is needed by the payment backend and by the nullifier checker.

## Running the payment backend

```
khafi-backend
```

Settings are read from the environment (a `.env` file in the working
directory is loaded too):

| Variable                | Default                   | Meaning                                        |
|-------------------------|---------------------------|------------------------------------------------|
| `REDIS_URL`             | `redis://localhost:6379`  | Redis connection URL                           |
| `API_HOST`              | `0.0.0.0`                 | Address the HTTP API binds to                  |
| `API_PORT`              | `8081`                    | Port of the HTTP API (1–65535)                 |
| `POLLING_INTERVAL_SECS` | `60`                      | Seconds between polls (must not be 0)          |
| `MOCK_MODE`             | `true`                    | `true` or `false`; when `true` the mock chain grows by one block after each poll |
| `ZCASH_NODE_URL`        | unset                     | Required when `MOCK_MODE=false`                |
| `ZCASH_NODE_USER`       | unset                     | Stored in the configuration                    |
| `ZCASH_NODE_PASSWORD`   | unset                     | Stored in the configuration                    |
| `PAYMENT_ADDRESS`       | `u1test_mock_address`     | Address payments are watched for               |

An invalid value (a non-numeric or zero port, a zero interval, a `MOCK_MODE`
other than `true`/`false`, or `MOCK_MODE=false` without `ZCASH_NODE_URL`)
raises `ConfigError`; the command logs it and exits with status 1.

The command connects to Redis, then runs the HTTP API and the monitor side by
side until one of them stops or it is interrupted.

### The mock chain

`khafi.mock_node.MockNode` starts at height 100000. A block whose height is
divisible by 10 carries a payment to the gateway (amount
`10_000_000 + height * 1000` zatoshis); a block divisible by 5 carries an
unrelated transaction of 5,000,000 zatoshis. Nullifiers are derived
deterministically from the height by `generate_nullifier_bytes`.

The monitor resumes from the highest block height of any stored payment, or
from 0 when Redis holds none, and processes every block up to the current
height on each poll.

### HTTP API

| Method | Path                   | Result                                                              |
|--------|------------------------|---------------------------------------------------------------------|
| GET    | `/health`              | `200 OK` when Redis answers a ping, `503` otherwise                 |
| GET    | `/payment/{nullifier}` | `exists`, `used`, `amount`, `block_height`, `tx_id` for a 64-hex-digit nullifier; `400` for a malformed one |
| POST   | `/admin/payment`       | Insert a payment from `nullifier_hex`, `amount`, `tx_id`, `block_height`; `201` when stored, `409` when it exists, `400` for bad JSON or a bad nullifier, `422` for missing or mistyped fields |
| GET    | `/stats`               | `total_payments`, `unused_payments`, `total_amount_zec`             |

Amounts are in zatoshis; `total_amount_zec` divides the sum by 100,000,000.
Storage failures answer `500` with an `error` field.

### Redis layout

- `payment:<nullifier hex>` – hash holding the payment's fields
- `payments:all` – set of every nullifier
- `payments:unused` – set of nullifiers not yet marked used
- `payments:by_height` – sorted set scored by block height

## Running the proof generation service

```
khafi-prover
```

| Variable       | Default                  | Meaning                    |
|----------------|--------------------------|----------------------------|
| `REGISTRY_URL` | `http://127.0.0.1:8083`  | Image-ID registry base URL |
| `PROVER_HOST`  | `0.0.0.0`                | Bind address               |
| `PROVER_PORT`  | `8084`                   | Bind port                  |

Endpoints:

| Method | Path                   | Body / result                                                      |
|--------|------------------------|--------------------------------------------------------------------|
| GET    | `/health`              | `{"status": "healthy", "service": "proof-generation-service"}`     |
| GET    | `/api/status`          | `loaded_programs` and `registry_healthy`                           |
| POST   | `/api/generate-proof`  | `customer_id`, `private_inputs`, `public_params`; returns `success` with `proof`, `image_id`, `outputs`, or `success: false` with `error` |
| POST   | `/api/load-program`    | a JSON string holding the customer id; loads that customer's program |

A program not yet loaded is fetched from the registry
(`GET {REGISTRY_URL}/api/deployments/{customer_id}`) and read from the
deployment's `guest_program_path`. A customer without a deployment gets `404`;
an unreachable registry or unreadable program file gets `500`.

### Plugging in a prover

`khafi.proof_prover.Prover` takes an executor: a callable given the guest
binary and the two inputs as compact JSON strings, returning the serialized
receipt and the journal as bytes. The proof is the receipt in hex; the
journal is decoded as JSON (`{}` when empty, `{"raw_journal": "<hex>"}` when
it is not JSON).

```python
from khafi.proof_main import build_state
from khafi.proof_service import create_app

state = build_state("http://127.0.0.1:8083", executor=my_executor)
app = create_app(state)  # a Starlette application
```

## What the package does not do

- It contains no zero-knowledge prover. `khafi-prover` starts without an
  executor, so every proof request answers `success: false` with
  "no prover backend configured" until an executor is supplied through
  `build_state`.
- It does not talk to a real Zcash node. The monitor always polls the mock
  node; `ZCASH_NODE_URL` and the node credentials are only checked and kept
  in the configuration.
- It does not verify receipts or provide an authorization server.
  `NullifierChecker` and `VerifierConfig` are the pieces it offers for one.
- The payment backend's API does not serve the commitment-tree and
  nullifier-check endpoints that `ZcashClient` calls.

## Using the library

- `khafi.backend_config.Config.from_env()` – the backend's settings;
  `api_address()` gives `host:port`.
- `khafi.mock_node.MockNode` and `khafi.parser.Parser` – simulated blocks and
  extraction of the payments addressed to the gateway (`ParseError` for a
  malformed nullifier).
- `khafi.storage.Storage.connect(url)` – the Redis payment store
  (`insert_payment`, `get_payment`, `check_exists`, `mark_used`, `get_stats`,
  `get_latest_block_height`, `health_check`, `close`); failures raise
  `StorageError`.
- `khafi.monitor.Monitor.create(config)` – the polling loop tying node,
  parser and storage together (`poll_once`, `process_block`, `start`).
- `khafi.backend_api.create_app(storage)` – the backend's Starlette app;
  `parse_nullifier(text)` decodes a 32-byte hex nullifier.
- `khafi.nullifier_checker.NullifierChecker.from_url(url).check_and_set(n)` –
  true the first time a nullifier is seen, false on a replay; new entries
  expire after 30 days.
- `khafi.verifier_config.image_id_to_bytes(words)` – converts an image ID of
  eight 32-bit words into 32 little-endian bytes;
  `VerifierConfig.from_env(words)` adds `REDIS_URL`.
- `khafi.guest.verify_zcash_payment(spending_key)` and
  `execute_business_logic(private_data, public_params)` – the checks a guest
  program performs: the nullifier is the key's first 32 bytes (all zeros for
  shorter keys), and the business check passes when both inputs are non-empty.
- `khafi.zcash_client.ZcashClient` and `khafi.registry_client.RegistryClient` –
  async HTTP clients; use them as async context managers or close them with
  `aclose()`.