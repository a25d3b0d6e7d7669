"""Gate service — reads request events, runs the engine, produces decisions.

Consumes from raw-requests, runs every event through GateEngine.handle(),
and publishes one decision per request to gate-decisions, keyed by
principal.  State is in-process; partition the input topic by principal so
one principal is always served by the same instance.

Input event:
    {"action": "report", "timestamp": 1700000000.0,
     "remote_addr": "203.0.113.9:51234",
     "headers": {"x-user-id": "alice", "accept-language": "ar"}}

Usage:
    python -m gatekeeper.main
    python -m gatekeeper.main --bootstrap-servers kafka-1:29092 --actions-config actions.yml
"""

import argparse
import json
import logging
import math
import signal
import sys

from confluent_kafka import Consumer, Producer, KafkaError
from confluent_kafka.admin import AdminClient, NewTopic
from prometheus_client import start_http_server

from gatekeeper import metrics
from gatekeeper.actions import ALL_ACTIONS
from gatekeeper.actions.loader import load_actions
from gatekeeper.engine import GateEngine, DEFAULT_VIOLATION_PENALTY
from gatekeeper.errors import GatekeeperError
from gatekeeper.principal import ORIGIN_FIELD

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down gate service...")
    running = False


def _ensure_topic(bootstrap_servers, topic):
    """Create the output topic if it doesn't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    fs = admin.create_topics([NewTopic(topic, num_partitions=3, replication_factor=3)])
    for t, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{t}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{t}' already exists")
            else:
                raise


def _parse_request(event) -> tuple[dict, str, float | None]:
    """Split a raw event into (request mapping, action id, timestamp).

    Raises ValueError for events that cannot be routed to an action.
    """
    if not isinstance(event, dict):
        raise ValueError("event must be a JSON object")
    action = event.get("action")
    if not isinstance(action, str) or not action:
        raise ValueError("event has no action")

    headers = event.get("headers") or {}
    if not isinstance(headers, dict):
        raise ValueError("headers must be a JSON object")

    request = {str(name).lower(): value for name, value in headers.items()}
    if event.get(ORIGIN_FIELD) is not None:
        request[ORIGIN_FIELD] = event[ORIGIN_FIELD]

    timestamp = event.get("timestamp")
    if timestamp is not None and (isinstance(timestamp, bool)
                                  or not isinstance(timestamp, (int, float))):
        raise ValueError("timestamp must be a number")
    # json.loads accepts NaN and Infinity
    if timestamp is not None and not math.isfinite(timestamp):
        raise ValueError("timestamp must be finite")
    return request, action, timestamp


def _process_message(engine: GateEngine, payload: bytes) -> dict | None:
    """Decode one message and run it through the engine.

    Returns the decision, or None (after counting the error) when the
    message is malformed or names an unknown action.
    """
    try:
        event = json.loads(payload.decode("utf-8"))
        request, action, timestamp = _parse_request(event)
        decision = engine.handle(request, action, now=timestamp)
    except (json.JSONDecodeError, UnicodeDecodeError):
        metrics.errors_total.labels(reason="decode").inc()
        return None
    except ValueError as e:
        metrics.errors_total.labels(reason="malformed").inc()
        logger.debug("Dropping malformed event: %s", e)
        return None
    except GatekeeperError as e:
        metrics.errors_total.labels(reason="unroutable").inc()
        logger.warning("Dropping event: %s", e)
        return None

    metrics.record_decision(decision)
    return decision


def main():
    parser = argparse.ArgumentParser(description="Gate service")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--input-topic", default="raw-requests")
    parser.add_argument("--output-topic", default="gate-decisions")
    parser.add_argument("--group-id", default="gatekeeper")
    parser.add_argument(
        "--actions-config", default=None,
        help="YAML file of action classes (default: built-in classes)",
    )
    parser.add_argument(
        "--metrics-port", type=int, default=9090, help="Prometheus metrics HTTP port",
    )
    parser.add_argument(
        "--violation-penalty", type=int, default=DEFAULT_VIOLATION_PENALTY,
        help="Reputation lost per violation",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    actions = load_actions(args.actions_config) if args.actions_config else ALL_ACTIONS
    engine = GateEngine(actions=actions, violation_penalty=args.violation_penalty)

    _ensure_topic(args.bootstrap_servers, args.output_topic)
    start_http_server(args.metrics_port)
    print(f"Prometheus metrics server started on :{args.metrics_port}")

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": args.group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.input_topic])

    producer = Producer({"bootstrap.servers": args.bootstrap_servers})

    consumed = 0
    rejected = 0

    print(f"Gate service started  input={args.input_topic}  "
          f"output={args.output_topic}  actions={sorted(engine.actions)}")

    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                metrics.errors_total.labels(reason="consumer").inc()
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            consumed += 1
            decision = _process_message(engine, msg.value())
            if decision is None:
                continue

            producer.produce(
                args.output_topic,
                key=decision["principal"].encode("utf-8"),
                value=json.dumps(decision).encode("utf-8"),
            )
            producer.poll(0)

            if decision["status"] != "allowed":
                rejected += 1
                if decision.get("escalated"):
                    print(f"BLOCK  action={decision['action']:<8s} "
                          f"principal={decision['principal']}  "
                          f"violations={decision['violations']}  "
                          f"minutes={decision['blocked_for_minutes']}")

            # Batch flush every 1000 events (producer buffers internally)
            if consumed % 1000 == 0:
                producer.flush()

            if consumed % 500 == 0:
                print(f"  ... {consumed} requests consumed, {rejected} rejected, "
                      f"{len(engine.penalties)} principals penalized")
    finally:
        producer.flush()
        consumer.close()
        print(f"Done. {consumed} requests consumed, {rejected} rejected.")


if __name__ == "__main__":
    main()
